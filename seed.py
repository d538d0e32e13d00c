"""
Seed data script.
Creates a team, one user per role with API keys and a sample case.
Only runs if users table is empty (first-time setup).
"""
from sqlalchemy.orm import Session

from database import SessionLocal, init_db
from dates import add_days, today
from models import ExceptionType, Team, User, UserRole, WorkerException


def seed_users(db: Session) -> bool:
    """
    Seed initial team and users if table is empty.
    Returns True if seeding was performed.
    """
    existing = db.query(User).first()
    if existing:
        print("Users already exist. Skipping seed.")
        return False

    # Memorable keys for local use only
    users_data = [
        {"username": "admin1", "full_name": "Site Admin", "role": UserRole.ADMIN, "api_key": "rehab_admin1"},
        {"username": "whs1", "full_name": "Jordan Blake", "role": UserRole.WHS_CONTROL_CENTER, "api_key": "rehab_whs1"},
        {"username": "clinician1", "full_name": "Dana Reyes", "role": UserRole.CLINICIAN, "api_key": "rehab_clinician1"},
        {"username": "supervisor1", "full_name": "Sam Okafor", "role": UserRole.SUPERVISOR, "api_key": "rehab_supervisor1"},
        {"username": "leader1", "full_name": "Priya Nair", "role": UserRole.TEAM_LEADER, "api_key": "rehab_leader1"},
        {"username": "worker1", "full_name": "Alex Chen", "role": UserRole.WORKER, "api_key": "rehab_worker1"},
        {"username": "worker2", "full_name": "Morgan Lee", "role": UserRole.WORKER, "api_key": "rehab_worker2"},
    ]

    users = {}
    for data in users_data:
        user = User(is_active=True, **data)
        db.add(user)
        users[data["username"]] = user
    db.flush()

    team = Team(
        name="Warehouse A",
        site_location="Dock 3",
        supervisor_id=users["supervisor1"].id,
        team_leader_id=users["leader1"].id,
    )
    db.add(team)
    db.flush()
    for username in ("leader1", "worker1", "worker2"):
        users[username].team_id = team.id

    db.commit()

    print("\n" + "=" * 60)
    print("SEED DATA CREATED - SAVE THESE API KEYS!")
    print("=" * 60)
    for data in users_data:
        print(f"\n{data['username']} ({data['role'].value}):")
        print(f"  API Key: {data['api_key']}")
    print("\n" + "=" * 60 + "\n")

    return True


def seed_sample_case(db: Session) -> bool:
    """
    Seed one injury case assigned to the clinician.
    Only runs if no exception exists yet.
    """
    existing = db.query(WorkerException).first()
    if existing:
        print("Exceptions already exist. Skipping sample case.")
        return False

    worker = db.query(User).filter(User.username == "worker1").first()
    clinician = db.query(User).filter(User.username == "clinician1").first()
    leader = db.query(User).filter(User.username == "leader1").first()
    if not worker or not clinician:
        print("Seed users missing. Skipping sample case.")
        return False

    case = WorkerException(
        user_id=worker.id,
        team_id=worker.team_id,
        exception_type=ExceptionType.INJURY,
        reason="Lower back strain while lifting",
        start_date=add_days(today(), -3),
        is_active=True,
        clinician_id=clinician.id,
        created_by=leader.id if leader else None,
    )
    db.add(case)
    db.commit()

    print(f"\nSample case {case.id} created for {worker.display_name}")
    return True


def main():
    """Main entry point."""
    print("Initializing database...")
    init_db()

    print("Seeding data...")
    db = SessionLocal()
    try:
        seed_users(db)
        seed_sample_case(db)
    finally:
        db.close()

    print("Done!")


if __name__ == "__main__":
    main()
