"""Create the schema and optionally seed a demo team from a JSON file.

Usage:
    python scripts/init_db.py
    python scripts/init_db.py --seed seed.json

Seed file layout::

    {
      "users": [{"name": "Ada", "email": "ada@example.com", "github_username": "ada"}],
      "projects": [{"name": "Demo", "github_repo_url": "https://github.com/acme/demo",
                    "lead": "ada@example.com", "members": ["bob@example.com"]}],
      "tasks": [{"project": "Demo", "title": "Fix login bug", "assignee": "ada@example.com"}]
    }
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add project root to path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv

load_dotenv(ROOT / ".env")

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from ontrackr.core.config import get_settings
from ontrackr.core.database import Base
from ontrackr.dao.project_dao import ProjectDAO
from ontrackr.dao.task_dao import TaskDAO
from ontrackr.dao.user_dao import UserDAO
from ontrackr.models import *  # noqa: F401,F403  (register every table)
from ontrackr.services.project_service import ProjectService
from ontrackr.services.task_service import TaskService


async def _seed(factory: async_sessionmaker, seed: dict) -> None:
    user_dao, project_dao = UserDAO(), ProjectDAO()
    projects = ProjectService(project_dao, user_dao)
    tasks = TaskService(TaskDAO(), project_dao)

    async with factory() as session, session.begin():
        users = {}
        for entry in seed.get("users", []):
            user = await user_dao.get_by_field(session, email=entry["email"])
            if user is None:
                user = await user_dao.create(session, **entry)
            users[user.email] = user

        project_ids = {}
        for entry in seed.get("projects", []):
            result = await projects.create(
                session,
                name=entry["name"],
                github_repo_url=entry["github_repo_url"],
                created_by=users[entry["lead"]].id,
                member_ids=[users[email].id for email in entry.get("members", [])],
                description=entry.get("description"),
            )
            project_ids[entry["name"]] = result["project"].id
            print(f"  project {entry['name']} → {result['project'].id}")

        for entry in seed.get("tasks", []):
            assignee = users[entry["assignee"]]
            task = await tasks.create(
                session,
                project_id=project_ids[entry["project"]],
                title=entry["title"],
                assigned_to=assignee.id,
                assigned_to_name=assignee.name,
                deadline_in_days=entry.get("deadline_in_days"),
            )
            print(f"  task {task.title!r} keywords={task.keywords}")


async def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--seed", type=Path, help="JSON seed file")
    args = parser.parse_args()

    engine = create_async_engine(get_settings().database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("schema ready")

    if args.seed:
        seed = json.loads(args.seed.read_text())
        await _seed(async_sessionmaker(engine, expire_on_commit=False), seed)

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
