from setuptools import find_packages, setup

setup(
    name="ftp-vfs",
    version="0.1.0",
    description="Virtual file system adapter over SFTP, SCP, FTP/FTPS and WebDAV",
    author="Daniel T Sasser II",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "paramiko>=3.0.0",
        "requests>=2.28.0",
    ],
    entry_points={
        "console_scripts": [
            "ftp-vfs=ftp_vfs.__main__:main",
        ],
    },
    python_requires=">=3.10",
    extras_require={
        "dev": [
            "pytest",
            "pyftpdlib",
            "build",
            "twine",
        ],
    },
)
