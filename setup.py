from setuptools import setup, find_packages
from os.path import dirname, join
import io

with open(join(dirname(__file__), 'README.md'), encoding='utf-8') as readme_file:
    readme = readme_file.read()

def get_version(relpath):
    """Read version info from a file without importing it."""
    for line in io.open(join(dirname(__file__), relpath), encoding="utf-8"):
        if line.startswith("__version__"):
            return line.split("=")[1].strip().strip("'\"")

setup(
    name='phylobeta',
    version=get_version("phylobeta/__init__.py"),
    description='Standardized effect sizes of phylogenetic beta diversity against null models',
    long_description=readme,
    long_description_content_type='text/markdown',
    url="https://github.com/phylobeta/phylobeta",
    author='phylobeta developers',
    license='GPL3+',
    classifiers=[
        'Development Status :: 4 - Beta',
        'Topic :: Scientific/Engineering',
        'Topic :: Scientific/Engineering :: Bio-Informatics',
        'License :: OSI Approved :: GNU General Public License v3 or later (GPLv3+)',
        'Programming Language :: Python :: 3',
    ],
    keywords="phylogenetic beta diversity null model ses mpd mntd ecology",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires='>=3.8',
    install_requires=[
        'pandas>=1.0',
        'numpy>=1.20',
        'scipy>=1.0',
        'tqdm>=4.0',
    ],
    extras_require={
        'test': ['pytest>=6.0'],
    },
    entry_points={
        'console_scripts': [
            'phylobeta = phylobeta.__main__:main'
        ]
    },
)
