'''
Exceptions raised by the glider_ctd package.

All exceptions derive from GliderCTDError. The two concrete errors
also derive from ValueError, so that code catching ValueError, as
is common for numpy/scipy style input checking, keeps working.
'''


class GliderCTDError(Exception):
    pass


class DataInconsistencyError(GliderCTDError, ValueError):
    '''Raised when the same timestamp carries conflicting sample values.'''
    pass


class InvalidConfigurationError(GliderCTDError, ValueError):
    '''Raised for unknown options, wrongly shaped inputs or out-of-range settings.'''
    pass
