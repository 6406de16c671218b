"""Deactivate connection profiles whose validity window has ended.

Runs the same sweep as the scheduled expiry job once and prints a summary, so
it can be wired into an external cron or invoked by hand after bulk imports.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Ensure project root is importable when the script is executed directly.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.config import get_settings  # noqa: E402  (import after path setup)
from app.database import SessionLocal  # noqa: E402
from app.schemas import ConnectionProfileRead  # noqa: E402
from app.services.connection_profile_queries import ConnectionProfileQueryService  # noqa: E402
from app.services.connection_profiles import ConnectionProfileService  # noqa: E402


def list_expired() -> list[ConnectionProfileRead]:
    with SessionLocal() as session:
        return ConnectionProfileQueryService(session).expired(skip_cache=True)


def deactivate_expired(actor: str) -> int:
    with SessionLocal() as session:
        result = ConnectionProfileService(session).auto_deactivate_expired(actor_id=actor)

    print(f"Deactivated {result.deactivated} expired connection profile(s)")
    for error in result.errors or []:
        print(f"  failed {error.id}: {error.message}", file=sys.stderr)
    return 1 if result.errors else 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Deactivate expired connection profiles.")
    parser.add_argument(
        "--actor",
        default=get_settings().profile_expiry_sweep_actor,
        help="Actor id recorded in updated_by for deactivated profiles",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List expired profiles without changing them",
    )

    args = parser.parse_args()
    if args.dry_run:
        expired = list_expired()
        for profile in expired:
            state = "active" if profile.is_active else "inactive"
            print(f"{profile.id}  {profile.profile_code}  valid_to={profile.valid_to.isoformat()}  {state}")
        print(f"{len(expired)} expired connection profile(s)")
        return

    sys.exit(deactivate_expired(args.actor))


if __name__ == "__main__":
    main()
