import os
from setuptools import setup

with open(os.path.join("src", "glider_ctd", "__init__.py"), "r") as fh:
    while True:
        line = fh.readline()
        if line.startswith("__version__"):
            VERSION = line.split("=")[1].strip().replace('"','').replace("'",'')
            break

with open('requirements.txt') as fobj:
    install_requires = [line.strip() for line in fobj if line.strip()]

setup(name="glider_ctd",
      version=VERSION,
      description='Sensor lag and thermal lag corrections for glider CTD data',
      author='Lucas Merckelbach',
      author_email='lucas.merckelbach@hereon.de',
      packages=["glider_ctd"],
      package_dir={"": "src"},
      install_requires=install_requires,
      extras_require={"test": ["pytest"]},
      python_requires=">=3.7",
      license='GPL',
      platforms='UNIX',
      )
