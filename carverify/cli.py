"""
The command line interface: extract the verified content for a CID path from an archive, or verify
every block of an archive.
"""
from __future__ import annotations

import argparse
import os
import sys

import carverify

from carverify.errors import VerificationError
from carverify.extract import VerifiedExtractor, validate_archive
from carverify.lib.cid import PathRequest
from carverify.lib.environment import LogLevel, logger


def main(argv: list[str] | None = None) -> int:
    """
    Main routine of the carverify command. Returns 0 on success and 1 if the archive failed to
    verify; usage errors exit with code 2.
    """
    argp = argparse.ArgumentParser(
        prog='carverify',
        description=(
            'Extract the content that a CID path refers to from a CAR archive. Every block is '
            'checked against its content identifier before any of its content is written.'
        ),
    )
    argp.add_argument(
        'cidpath',
        nargs='?',
        help='The requested path, a root CID optionally followed by /-separated segments.'
    )
    argp.add_argument(
        'archive',
        nargs='?',
        default='-',
        help='The archive to read; the default is to read it from standard input.'
    )
    argp.add_argument(
        '-V', '--version',
        action='store_true',
        help='Only show the currently installed version and exit.'
    )
    argp.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Increase the log verbosity; may be given twice.'
    )
    argp.add_argument(
        '-c', '--check',
        action='store_true',
        help='Verify every block of the archive instead of extracting content. If this option is '
             'given, the only positional argument is the archive.'
    )
    argp.add_argument(
        '-o', '--output',
        metavar='FILE',
        default=None,
        help='Write the content to this file instead of standard output.'
    )

    args = argp.parse_args(argv)

    if args.version:
        print(carverify.__version__)
        return 0

    log = logger('carverify')
    log.setLevel(LogLevel.FromVerbosity(args.verbose))

    if args.check:
        if args.cidpath is not None and args.archive == '-':
            args.archive = args.cidpath
        elif args.cidpath is not None:
            argp.error('the check mode accepts only an archive argument')
        request = None
    elif args.cidpath is None:
        argp.error('a CID path is required unless the check mode is used')
    else:
        try:
            request = PathRequest.parse(args.cidpath)
        except ValueError as V:
            argp.error(F'invalid CID path {args.cidpath!r}: {V!s}')

    if args.archive == '-':
        source = sys.stdin.buffer
        close_source = False
    else:
        try:
            source = open(args.archive, 'rb')
        except OSError as E:
            argp.error(F'cannot open archive: {E!s}')
        close_source = True

    try:
        if request is None:
            header = validate_archive(source)
            log.info(F'archive with roots {", ".join(str(r) for r in header.roots)} is valid')
            return 0
        if args.output is None:
            sink = sys.stdout.buffer
        else:
            sink = open(args.output, 'wb')
        complete = False
        try:
            for chunk in VerifiedExtractor(request, source):
                sink.write(chunk)
            complete = True
        finally:
            if sink is sys.stdout.buffer:
                sink.flush()
            else:
                sink.close()
                if not complete:
                    os.remove(args.output)
    except VerificationError as error:
        log.error(F'{error.name}: {error!s}')
        return 1
    finally:
        if close_source:
            source.close()
    return 0


if __name__ == '__main__':
    sys.exit(main())
