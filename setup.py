from setuptools import setup, find_packages
import sys

if sys.version_info < (3, 9):
    print("Please use python 3.9 or newer.")
    sys.exit(1)


requires = [
    "cryptography",
    "pyramid",
    "python-json-logger",
    "requests",
    "sqlalchemy>=1.4",
    "webob",
    "zope.interface",
]

test_deps = ["pytest"]


setup(
    name="shopdash",
    version="0.1a",
    description="Customer dashboard and app proxy auth for a shopify storefront.",
    install_requires=requires,
    packages=find_packages(exclude=["*.tests"]),
    include_package_data=True,
    zip_safe=False,
    extras_require={
        "test": test_deps,
        "dev": ["flake8", "black"],
    },
    entry_points={
        "paste.app_factory": ["main = shopdash.app:main"],
    },
)
