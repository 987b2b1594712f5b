"""Setup.py - Python build/installation script for the Gerrit pipeline tools.
The tools are meant to be installed on Jenkins agents and called from
pipelines of Gerrit-triggered jobs.
"""
import setuptools

setuptools.setup(
    name="gerrit_pipeline",
    version="0.1.0",
    author="CI team",
    description="Gerrit helpers for Jenkins pipelines",
    long_description=(
        "# Gerrit pipeline tools\n\n"
        "Tools and libraries for Jenkins jobs triggered by Gerrit: patchset"
        " checkout, change and approval queries and build lookup"
    ),
    long_description_content_type="text/markdown",
    packages=['gerrit_tools', 'gerrit_libs'],
    package_data={'gerrit_libs': ['templates/*.j2']},
    python_requires=">=3.7",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: GNU General Public License v3 (GPLv3)",
        "Operating System :: POSIX :: Linux",
    ],
    install_requires=[
        "requests", "pyyaml", "jinja2", "pyxdg", "click"
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'gerrit-checkout = gerrit_tools.gerrit_checkout:checkout_main_cli',
            'gerrit-change = gerrit_tools.gerrit_change:change_main_cli',
            'gerrit-builds = gerrit_tools.gerrit_builds:builds_main_cli',
        ]
    }
)
