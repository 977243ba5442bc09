import os
from setuptools import setup

here = os.path.abspath(os.path.dirname(__file__))
with open(os.path.join(here, "README.rst"), 'r', encoding="utf-8") as f:
    long_description = f.read()

setup(
    name='subalign',
    version='1.0.0',
    description='Align multiple subwoofers for the smoothest summed response',
    long_description=long_description,
    packages=['subalign'],
    license='BSD',
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: End Users/Desktop',
        'Topic :: Multimedia :: Sound/Audio :: Analysis',
        'License :: OSI Approved :: BSD License',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Programming Language :: Python :: 3 :: Only',
    ],
    keywords='subwoofer alignment frequency response phase all-pass',
    entry_points={
        'console_scripts': ['subalign=subalign.app:main']
    },
    python_requires=">=3.9",
    install_requires=['eventkit', 'numba', 'numpy'],
    extras_require={
        'test': ['pytest']
    }
)
