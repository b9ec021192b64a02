"""Command-line interface for KinMerge."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

from .. import __version__
from ..config import DedupeConfig
from ..core.exceptions import KinMergeError, ValidationError
from ..core.models import CandidateStatus, DuplicateCandidate
from ..service import DedupeService

logger = logging.getLogger(__name__)


def print_candidates(service: DedupeService, candidates: List[DuplicateCandidate]) -> None:
    """Print candidates, highest confidence first.

    Args:
        service: Service used to resolve names and bands
        candidates: Candidates to display
    """
    if not candidates:
        print("No candidates.")
        return

    print("-" * 72)
    for candidate in candidates:
        person_a = service.db.get_person(candidate.person_a_id, load_relationships=False)
        person_b = service.db.get_person(candidate.person_b_id, load_relationships=False)
        band = service.config.band(candidate.confidence_score) or '-'
        print(f"{candidate.id}  {candidate.confidence_score:.3f} [{band}] {candidate.status.value}")
        print(f"   A: {person_a} ({candidate.person_a_id})")
        print(f"   B: {person_b} ({candidate.person_b_id})")
        if candidate.match_reasons:
            print(f"   Reasons: {', '.join(candidate.match_reasons)}")
    print("-" * 72)


def parse_resolutions(items: Optional[List[str]]) -> Dict[str, str]:
    """Parse FIELD=CHOICE arguments into a resolution mapping."""
    resolutions = {}
    for item in items or []:
        field_name, sep, choice = item.partition('=')
        if not sep or not field_name or not choice:
            raise ValidationError(f"Expected FIELD=CHOICE, got: {item}")
        resolutions[field_name.strip()] = choice.strip()
    return resolutions


def init_command(service: DedupeService, args: argparse.Namespace) -> int:
    print(f"Database ready: {service.db.db_path}")
    return 0


def import_command(service: DedupeService, args: argparse.Namespace) -> int:
    """Import a family from a JSON document."""
    path = Path(args.file)
    if not path.exists():
        print(f"Error: File not found: {path}", file=sys.stderr)
        return 1

    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    family_id = service.import_family(data)
    print(f"Imported family {family_id}")
    return 0


def scan_command(service: DedupeService, args: argparse.Namespace) -> int:
    report = service.scan_report(args.family, force_refresh=args.force)
    mode = 'incremental' if report.incremental else 'full'
    print(f"Scan ({mode}) of family {args.family}: {report.stats}")
    print_candidates(service, report.candidates)
    return 0


def candidates_command(service: DedupeService, args: argparse.Namespace) -> int:
    status = None if args.status == 'all' else CandidateStatus(args.status)
    print_candidates(service, service.list_candidates(args.family, status))
    return 0


def dismiss_command(service: DedupeService, args: argparse.Namespace) -> int:
    candidate = service.dismiss(args.candidate, args.actor)
    print(f"Candidate {candidate.id} is {candidate.status.value}")
    return 0


def preview_command(service: DedupeService, args: argparse.Namespace) -> int:
    """Print suggested resolutions and affected references for a merge."""
    preview = service.preview(args.winner, args.loser)
    print(f"Winner: {preview.winner} ({preview.winner.id})")
    print(f"Loser:  {preview.loser} ({preview.loser.id})")
    print()
    if preview.suggestions:
        print("Differing fields:")
        for suggestion in preview.suggestions:
            print(f"  {suggestion.field}: {suggestion.winner_value!r} vs {suggestion.loser_value!r}")
            print(f"    -> {suggestion.decision.value}: {suggestion.chosen!r} ({suggestion.reason})")
    else:
        print("No differing fields.")
    print()
    print("References to repoint:")
    for table, count in preview.reference_counts.items():
        print(f"  {table}: {count}")
    return 0


def merge_command(service: DedupeService, args: argparse.Namespace) -> int:
    result = service.merge(
        actor_id=args.actor,
        candidate_id=args.candidate,
        winner_id=args.winner,
        loser_id=args.loser,
        field_resolutions=parse_resolutions(args.resolve),
        reason=args.reason,
    )
    print(result)
    return 0


def history_command(service: DedupeService, args: argparse.Namespace) -> int:
    entries = service.list_history(args.family)
    if not entries:
        print("No merges.")
        return 0

    for entry in entries:
        state = f" (undone {entry.undone_at} by {entry.undone_by})" if entry.is_undone else ""
        print(f"{entry.id}  {entry.merged_at}  {entry.loser_id} -> {entry.winner_id} by {entry.actor_id}{state}")
        if entry.reason:
            print(f"   Reason: {entry.reason}")
        for decision in entry.field_decisions:
            print(f"   {decision.field}: {decision.decision.value} -> {decision.chosen!r}")
    return 0


def undo_command(service: DedupeService, args: argparse.Namespace) -> int:
    entry = service.undo(args.merge, args.actor)
    print(f"Undid merge {entry.id}: {entry.loser_id} restored")
    return 0


def resolve_command(service: DedupeService, args: argparse.Namespace) -> int:
    print(service.resolve_person(args.person))
    return 0


def stats_command(service: DedupeService, args: argparse.Namespace) -> int:
    """Print the families in the database and record counts."""
    families = service.db.list_families()
    print(f"Families: {len(families)}")
    for family in families:
        print(f"  {family['id']}  {family['name']}")
    print()
    for name, count in service.db.get_stats().items():
        print(f"  {name}: {count}")
    return 0


COMMANDS = {
    'init': init_command,
    'import': import_command,
    'scan': scan_command,
    'candidates': candidates_command,
    'dismiss': dismiss_command,
    'preview': preview_command,
    'merge': merge_command,
    'history': history_command,
    'undo': undo_command,
    'resolve': resolve_command,
    'stats': stats_command,
}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog='kinmerge',
        description='Find, review and merge duplicate people in a family tree database.',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose output'
    )

    parser.add_argument(
        '--db',
        help='Database file (defaults to KINMERGE_DATABASE or kinmerge.db)'
    )

    subparsers = parser.add_subparsers(
        dest='command',
        help='Available commands'
    )

    subparsers.add_parser('init', help='Create the database schema')

    import_parser = subparsers.add_parser('import', help='Import a family from JSON')
    import_parser.add_argument('file', help='Path to the JSON document')

    scan_parser = subparsers.add_parser('scan', help='Scan a family for duplicates')
    scan_parser.add_argument('family', help='Family id')
    scan_parser.add_argument(
        '--force',
        action='store_true',
        help='Re-score every pair instead of only changed persons'
    )

    candidates_parser = subparsers.add_parser('candidates', help='List candidates of a family')
    candidates_parser.add_argument('family', help='Family id')
    candidates_parser.add_argument(
        '--status',
        choices=['pending', 'dismissed', 'merged', 'all'],
        default='pending',
        help='Candidate status to list (default: pending)'
    )

    dismiss_parser = subparsers.add_parser('dismiss', help='Dismiss a candidate')
    dismiss_parser.add_argument('candidate', help='Candidate id')
    dismiss_parser.add_argument('--actor', help='Who dismisses the candidate')

    preview_parser = subparsers.add_parser('preview', help='Preview a merge')
    preview_parser.add_argument('winner', help='Surviving person id')
    preview_parser.add_argument('loser', help='Person id to merge away')

    merge_parser = subparsers.add_parser('merge', help='Merge two persons')
    merge_parser.add_argument('--candidate', help='Candidate id to merge')
    merge_parser.add_argument('--winner', help='Surviving person id')
    merge_parser.add_argument('--loser', help='Person id to merge away')
    merge_parser.add_argument('--actor', required=True, help='Who performs the merge')
    merge_parser.add_argument(
        '--resolve',
        action='append',
        metavar='FIELD=CHOICE',
        help='Field resolution: keep_winner, keep_loser or union (repeatable)'
    )
    merge_parser.add_argument('--reason', help='Note stored with the merge')

    history_parser = subparsers.add_parser('history', help='Show merge history of a family')
    history_parser.add_argument('family', help='Family id')

    undo_parser = subparsers.add_parser('undo', help='Undo a merge')
    undo_parser.add_argument('merge', help='Merge history id')
    undo_parser.add_argument('--actor', required=True, help='Who undoes the merge')

    resolve_parser = subparsers.add_parser('resolve', help='Resolve a person id through tombstones')
    resolve_parser.add_argument('person', help='Person id')

    subparsers.add_parser('stats', help='Show families and record counts')

    return parser


def main(argv: Optional[list] = None) -> int:
    """Main entry point for the CLI.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    if not args.command:
        parser.print_help()
        return 0

    config = DedupeConfig.from_env()
    db_path = Path(args.db) if args.db else config.database_path

    try:
        service = DedupeService.open(db_path, config)
    except Exception as e:
        print(f"Error opening database {db_path}: {e}", file=sys.stderr)
        return 1

    try:
        return COMMANDS[args.command](service, args)
    except KinMergeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except (OSError, json.JSONDecodeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        service.close()


if __name__ == '__main__':
    sys.exit(main())
