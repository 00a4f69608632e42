#!/usr/bin/env python3
from __future__ import annotations

import re
import os
import setuptools
import pathlib
import sys
import toml

__minver__ = '3.8'
__github__ = 'https://github.com/carverify/carverify/'
__gitraw__ = 'https://raw.githubusercontent.com/carverify/carverify/'
__author__ = 'The carverify authors'
__slogan__ = 'Verified extraction of content from content addressable archives.'
__topics__ = [
    'Development Status :: 3 - Alpha',
    'Operating System :: OS Independent',
    'Programming Language :: Python :: 3 :: Only',
    'Topic :: Security',
    'Topic :: Security :: Cryptography',
    'Topic :: System :: Archiving',
]

_BUILD_ONLY = {'setuptools', 'wheel', 'toml'}


class DeployCommand(setuptools.Command):
    description = 'Tag and push new release.'
    user_options = []

    def initialize_options(self):
        pass

    def finalize_options(self):
        pass

    @staticmethod
    def main():
        import subprocess
        import shlex
        import carverify
        import os

        from pathlib import Path

        DEVNULL = open(os.devnull, 'wb')

        def run(cmd):
            print(F'run: {cmd}')
            return subprocess.check_call(
                shlex.split(cmd),
                stdout=DEVNULL,
                stderr=DEVNULL,
                cwd=os.getcwd(),
            )

        root = Path(carverify.__file__).parent.parent
        os.chdir(root)

        try:
            run(F'git tag {carverify.__version__}')
            run(R'git push')
            run(R'git push --tags')
        except subprocess.CalledProcessError as E:
            print(F'error: {E!s}')
            return 1
        else:
            return 0

    def run(self):
        sys.exit(self.main())


def get_config():
    here = pathlib.Path(__file__).parent.absolute()
    sys.path.insert(0, str(here))

    import carverify

    def get_setup_readme(filename: str | pathlib.Path | None = None):
        if filename is None:
            filename = here.joinpath('README.md')
        if not os.path.exists(filename):
            return carverify.__doc__.strip()
        with open(filename, 'r', encoding='UTF8') as README:
            def complete_link(match):
                link: str = match[1]
                if any(link.lower().endswith(xt) for xt in ('jpg', 'gif', 'png', 'svg')):
                    return F'({__gitraw__}master/{link})'
                else:
                    return F'({__github__}blob/master/{link})'
            readme = README.read()
            return re.sub(R'(?<=\])\((?!\w+://)(.*?)\)', complete_link, readme)

    def get_requirements(name: str) -> str:
        return re.split(R'[\s<>=!~\[;]', name, maxsplit=1)[0].lower()

    ppcfg: dict[str, dict[str, list[str]]] = toml.load(str(here.joinpath('pyproject.toml')))
    requirements = [
        r for r in ppcfg['build-system']['requires'] if get_requirements(r) not in _BUILD_ONLY]

    extras = {
        'all': ['blake3'],
        'test': ['pytest', 'flake8'],
    }

    config = dict(
        name=carverify.__distribution__,
        version=carverify.__version__,
        long_description=get_setup_readme(),
        author=__author__,
        description=__slogan__,
        long_description_content_type='text/markdown',
        url=__github__,
        python_requires=F'>={__minver__}',
        classifiers=__topics__ + ['Topic :: Utilities'],
        packages=setuptools.find_packages(include=('carverify*',)),
        install_requires=requirements,
        extras_require=extras,
        include_package_data=True,
        entry_points={'console_scripts': ['carverify=carverify.cli:main']},
        cmdclass={'deploy': DeployCommand},
    )

    return config


if __name__ == '__main__':
    setuptools.setup(**get_config())
