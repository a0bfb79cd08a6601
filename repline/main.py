"""
repline - Main entry point.
Starts the console, or runs a history job.
"""

import sys
import os
import argparse
import logging

from repline import __version__
from repline.config import Config
from repline.errors import FatalInterpreterFault, ReplineError
from repline.history import Partition
from repline.history.exporter import export_history
from repline.history.importer import ImportJob, ImportSource, run_import
from repline.history.sqlite_backend import SCHEMA_DESCRIPTION
from repline.history.store import HistoryStore
from repline.output import format_table, print_dim, print_error, print_header, print_success, print_warning


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="repline",
        description="repline - a friendlier interactive Python console",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  repline                               Start the console
  repline --shell-mode                  Start in shell mode
  repline history export --file h.db    Export history to one container
  repline history import --from native  Import ~/.python_history

Once in the console:
  :reprex                               Toggle reprex output
  :shell / :r                           Switch between shell and Python
  :history search <query>               Fuzzy-search history
        """
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'repline {__version__}'
    )

    parser.add_argument(
        '--config-dir',
        type=str,
        help='Custom configuration directory (default: ~/.repline)'
    )

    parser.add_argument(
        '--history-dir',
        type=str,
        help='Directory holding r.db and shell.db (default: <config-dir>/history)'
    )

    parser.add_argument(
        '--no-history',
        action='store_true',
        help='Keep history in memory only'
    )

    parser.add_argument(
        '--shell-mode',
        action='store_true',
        help='Start in shell mode'
    )

    parser.add_argument(
        '--reprex',
        action='store_true',
        help='Start with reprex mode on'
    )

    parser.add_argument(
        '--with-version',
        type=str,
        metavar='V',
        help='Python version this console was launched for (set by :switch)'
    )

    parser.add_argument(
        '--shell',
        type=str,
        help='Override shell path'
    )

    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug mode'
    )

    subparsers = parser.add_subparsers(dest='command')
    history = subparsers.add_parser('history', help='Import, export or describe history')
    history_sub = history.add_subparsers(dest='history_command')
    history_sub.required = True

    export = history_sub.add_parser('export', help='Export both partitions into one container')
    export.add_argument('--file', required=True, help='Destination container')
    export.add_argument('--r-table', default=Partition.R.value, help='Table for interpreter history')
    export.add_argument('--shell-table', default=Partition.SHELL.value, help='Table for shell history')

    imp = history_sub.add_parser('import', help='Import history from another source')
    imp.add_argument('--from', dest='source', required=True,
                     choices=[s.value for s in ImportSource], help='Source format')
    imp.add_argument('--file', help='Source file (defaults depend on the format)')
    imp.add_argument('--hostname', help='Hostname to stamp on imported records')
    imp.add_argument('--dry-run', action='store_true', help='Report what would be imported')
    imp.add_argument('--import-duplicates', action='store_true',
                     help='Import records that already exist')
    imp.add_argument('--unified', action='store_true',
                     help='Read a repline container as a unified export')
    imp.add_argument('--r-table', default=Partition.R.value, help='Table for interpreter history')
    imp.add_argument('--shell-table', default=Partition.SHELL.value, help='Table for shell history')

    history_sub.add_parser('schema', help='Print the history container schema')
    return parser


def _setup_logging(debug: bool):
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _open_job_store(config: Config) -> HistoryStore:
    history_dir = config.get_history_dir()
    if history_dir is None:
        raise ReplineError("History is disabled; nothing to import into or export from")
    return HistoryStore(history_dir, strict=True)


def run_history_command(args, config: Config) -> int:
    """Run ``repline history ...``. Returns the process exit status."""
    if args.history_command == 'schema':
        print_header("History schema (one container per partition: r.db, shell.db; table 'history')")
        print(format_table(SCHEMA_DESCRIPTION, ("column", "type", "meaning")))
        return 0

    store = _open_job_store(config)
    try:
        if args.history_command == 'export':
            result = export_history(store, args.file, r_table=args.r_table,
                                    shell_table=args.shell_table)
            print_success(
                f"Exported {result.r_exported} r and {result.shell_exported} shell "
                f"entries to {result.path}"
            )
            return 0

        job = ImportJob(
            source=ImportSource(args.source),
            file=args.file,
            hostname=args.hostname,
            dry_run=args.dry_run,
            import_duplicates=args.import_duplicates,
            unified=args.unified,
            r_table=args.r_table,
            shell_table=args.shell_table,
        )
        result = run_import(job, store)
    finally:
        store.close()

    prefix = "[Dry run] Would import" if result.dry_run else "Imported"
    print_success(
        f"{prefix} {result.imported} entries "
        f"({result.imported_r} r, {result.imported_shell} shell) from {result.source_path}"
    )
    if result.duplicates_skipped:
        print_dim(f"Skipped {result.duplicates_skipped} duplicates")
    if result.parse_failed:
        print_warning(f"[Warning] {result.parse_failed} entries could not be parsed:")
        for error in result.errors[:20]:
            print_dim(f"  {error}", file=sys.stderr)
        if len(result.errors) > 20:
            print_dim(f"  ... and {len(result.errors) - 20} more", file=sys.stderr)
    return 0


def main(argv=None):
    """Main entry point for repline."""
    parser = build_parser()
    args = parser.parse_args(argv)

    debug = args.debug or bool(os.getenv('DEBUG'))
    if args.debug:
        os.environ['DEBUG'] = '1'
    _setup_logging(debug)

    try:
        # Initialize config
        config = Config(config_dir=args.config_dir)

        # CLI overrides last for this process only
        if args.history_dir:
            config.set('history_dir', args.history_dir, persist=False)
        if args.no_history:
            config.set('history_disabled', True, persist=False)
        if args.shell:
            config.set('shell', args.shell, persist=False)

        if args.command == 'history':
            sys.exit(run_history_command(args, config))

        from repline.session import Session
        from repline.shell import ReplShell

        session = Session.from_config(
            config,
            shell_mode=args.shell_mode,
            reprex=True if args.reprex else None,
        )
        shell = ReplShell(config, session=session, with_version=args.with_version)
        shell.run()

    except KeyboardInterrupt:
        print("\n\nInterrupted. Goodbye!")
        sys.exit(0)
    except FatalInterpreterFault as e:
        print_error(f"\n[Fatal Error] {e}")
        if debug:
            import traceback
            traceback.print_exc()
        sys.exit(1)
    except ReplineError as e:
        print_error(f"[Error] {e}")
        if debug:
            import traceback
            traceback.print_exc()
        sys.exit(1)
    except Exception as e:
        print(f"\n[Fatal Error] {e}")
        if debug:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == '__main__':
    main()
