from setuptools import setup

setup(
    name="meshguard",
    version="0.1.0",
    packages=["meshguard"],
    python_requires=">=3.8",
    install_requires=["numpy"],
    tests_require=["pytest", "pytest-cov", "pytest-xdist"],
    extras_require={"test": ["pytest", "pytest-cov", "pytest-xdist"]},
    entry_points={"console_scripts": ["meshguard = meshguard.__main__:main"]},
)
