"""
MEDREG CLI — local administration of a registry database.

Usage:
    python -m medreg.cli deploy ADDRESS   # Deploy with ADDRESS as permanent owner
    python -m medreg.cli owner            # Show the owner
    python -m medreg.cli report ID        # Show the report stored for a patient id
    python -m medreg.cli witness          # Show recent notifications
    python -m medreg.cli verify           # Verify the notification hash chain
"""
import sys

from medreg.config import get_db_path
from medreg.errors import AlreadyDeployed, NotDeployed
from medreg.registry import Registry
from medreg.witness import WitnessChain


def _open_registry() -> Registry:
    db_path = get_db_path()
    if not db_path.exists():
        print(f"Database not found at {db_path}")
        sys.exit(1)
    try:
        return Registry.open(db_path)
    except NotDeployed as e:
        print(str(e))
        sys.exit(1)


def cmd_deploy():
    if len(sys.argv) < 3:
        print("Usage: python -m medreg.cli deploy ADDRESS")
        sys.exit(1)
    try:
        registry = Registry.deploy(sys.argv[2], get_db_path())
    except AlreadyDeployed as e:
        print(str(e))
        sys.exit(1)
    print(f"Registry deployed at {registry.db_path}")
    print(f"Owner: {registry.owner}")


def cmd_owner():
    print(_open_registry().get_owner())


def cmd_report():
    if len(sys.argv) < 3:
        print("Usage: python -m medreg.cli report ID")
        sys.exit(1)
    try:
        patient_id = int(sys.argv[2])
    except ValueError:
        print(f"Not an integer: {sys.argv[2]}")
        sys.exit(1)
    record = _open_registry().get_record(patient_id)
    if record is None:
        print(f"(no report for patient {patient_id})")
        return
    print("=" * 50)
    print(f"PATIENT {record.patient_id}")
    print("=" * 50)
    print(f"\nAdded by: {record.added_by}")
    print(f"Added at: {record.added_at}")
    print(f"\n{record.report_data}")


def cmd_witness():
    db_path = get_db_path()
    if not db_path.exists():
        print(f"Database not found at {db_path}")
        sys.exit(1)
    wc = WitnessChain(db_path)
    entries = wc.list_entries(limit=20)
    print("=" * 50)
    print("MEDREG NOTIFICATIONS (last 20)")
    print("=" * 50)
    if not entries:
        print("\n(no entries)")
        return
    for e in entries:
        print(f"\n  [{e['id']}] {e['action']} patient {e['content_id']} by {e['agent_id']}")
        print(f"       at {e['timestamp']}")
        print(f"       hash: {e['hash'][:16]}...")


def cmd_verify():
    db_path = get_db_path()
    if not db_path.exists():
        print(f"Database not found at {db_path}")
        sys.exit(1)
    wc = WitnessChain(db_path)
    entries = wc.all_entries()
    ok = wc.verify_chain(entries)
    print(f"Entries: {len(entries)}")
    print(f"Chain:   {'VALID' if ok else 'BROKEN'}")
    if not ok:
        sys.exit(2)


def main():
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(0)
    cmd = sys.argv[1]
    commands = {
        "deploy": cmd_deploy,
        "owner": cmd_owner,
        "report": cmd_report,
        "witness": cmd_witness,
        "verify": cmd_verify,
    }
    if cmd not in commands:
        print(f"Unknown command: {cmd}")
        print(f"Available: {', '.join(commands)}")
        sys.exit(1)
    commands[cmd]()


if __name__ == "__main__":
    main()
