from setuptools import setup, find_packages

# Read long description from README.md
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="appimage-setup",
    version="1.1.0",
    description="Make AppImages executable and keep their .desktop launcher entries in sync",
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="MIT",
    packages=find_packages(include=["appimagesetup", "appimagesetup.*"]),
    python_requires=">=3.8",
    install_requires=[
        "packaging>=23.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.3.1",
        ],
        "dev": [
            "build>=0.10.0",
            "twine>=4.0.2",
            "flake8>=6.0.0",
            "pytest>=7.3.1",
        ],
    },
    entry_points={
        "console_scripts": [
            "appimage-setup=appimagesetup.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 5 - Production/Stable",
        "Intended Audience :: End Users/Desktop",
        "Topic :: Utilities",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Environment :: Console",
    ],
    keywords="appimage, linux, desktop-integration, desktop-entry, utility",
)
