import re

from setuptools import setup

with open('src/rkpm/version.py', 'r') as fd:
    __version__ = re.search(r'^__version__\s*=\s*[\'"]([^\'"]*)[\'"]', fd.read(), re.MULTILINE).group(1)


install_requires = [
    "cbor2>=5.4",
    "cryptography>=42.0",
    "pydantic>=2.5",
    "PyYAML>=6.0",
    "requests>=2.31",
]

testing_extras = [
    "black",
    "coverage",
    "isort",
    "mypy",
    "pylama",
    "pylint",
    "pytest",
    "types-PyYAML",
    "types-requests",
    "wheel",
]

setup(
    name="rkpm",
    version=__version__,
    description="Remote key provisioning manager",
    classifiers=["Programming Language :: Python :: 3",],
    keywords="",
    packages=[
        "rkpm",
        "rkpm.certs",
        "rkpm.common",
        "rkpm.pool",
        "rkpm.protocol",
        "rkpm.provisioner",
        "rkpm.tools",
    ],
    package_dir={"": "src"},
    python_requires=">=3.11",
    include_package_data=True,
    zip_safe=False,
    install_requires=install_requires,
    extras_require={"testing": testing_extras,},
    entry_points={
        "console_scripts": [
            "rkpm-ctl = rkpm.tools.rkpmctl:main",
        ]
    },
)
