from setuptools import setup, find_packages

exec(open("trio_asyncprocess/_version.py", encoding="utf-8").read())

LONG_DESC = open("README.rst", encoding="utf-8").read()

setup(
    name="trio-asyncprocess",
    version=__version__,
    description="Child processes for Trio, with streamed output and signal forwarding",
    long_description=LONG_DESC,
    license="MIT -or- Apache License 2.0",
    packages=find_packages(exclude=["tests"]),
    include_package_data=True,
    install_requires=["trio >= 0.22.0", "attrs >= 20.1.0", "outcome"],
    extras_require={"test": ["pytest", "pytest-trio"]},
    keywords=["async", "trio", "subprocess", "signals"],
    python_requires=">=3.8",
    classifiers=[
        "License :: OSI Approved :: MIT License",
        "License :: OSI Approved :: Apache Software License",
        "Framework :: Trio",
        "Operating System :: POSIX :: Linux",
        "Operating System :: MacOS :: MacOS X",
        "Programming Language :: Python :: 3 :: Only",
        "Programming Language :: Python :: Implementation :: CPython",
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
    ],
)
