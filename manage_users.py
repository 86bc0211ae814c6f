#!/usr/bin/env python3
"""
User Management Utility

Roles can only be changed from here; the API never lets a user change their own.
- Create a user with a chosen role
- Promote or demote an existing user
"""

import asyncio
import sys

from motor.motor_asyncio import AsyncIOMotorClient
from pydantic import ValidationError

from library_api.config import APIConfig
from library_api.database import LibraryDatabaseService
from library_api.errors import StoreError, StoreErrorKind
from library_api.logger import setup_logging
from library_api.models import RegisterRequest, Role, normalize_email
from library_api.security import hash_password

ROLES = [role.value for role in Role]


async def create_user(db_service: LibraryDatabaseService, config: APIConfig,
                      email: str, password: str, name: str, role: str) -> int:
    """Create a user with the requested role, validated like an API registration."""
    try:
        request = RegisterRequest(email=email, password=password, name=name)
    except ValidationError as e:
        for error in e.errors():
            field = ".".join(str(part) for part in error["loc"])
            print(f"❌ Error: {field}: {error['msg']}")
        return 1

    email = request.email
    try:
        user = await db_service.create_user(
            email,
            hash_password(request.password, config.bcrypt_rounds),
            request.name,
            role=Role(role),
        )
    except StoreError as e:
        if e.kind is StoreErrorKind.DUPLICATE_KEY:
            print(f"❌ Error: user '{email}' already exists")
            return 1
        raise

    print(f"✅ Created user '{email}' with role '{role}' (id {user['id']})")
    return 0


async def set_role(db_service: LibraryDatabaseService, email: str, role: str) -> int:
    """Change the role of an existing user."""
    email = normalize_email(email)
    if not await db_service.set_user_role(email, Role(role)):
        print(f"❌ Error: user '{email}' not found")
        return 1
    print(f"✅ User '{email}' now has role '{role}'")
    return 0


def print_usage():
    print("Usage: python manage_users.py [create|set-role] ...")
    print()
    print("Commands:")
    print("  create <email> <password> <name> [role]  - Create a user (role defaults to 'user')")
    print("  set-role <email> <role>                  - Change a user's role")
    print()
    print(f"Roles: {', '.join(ROLES)}")
    print()
    print("Examples:")
    print("  python manage_users.py create admin@example.com s3cret! 'Site Admin' admin")
    print("  python manage_users.py set-role reader@example.com admin")


async def main() -> int:
    """Main function."""
    if len(sys.argv) < 2:
        print_usage()
        return 1

    command = sys.argv[1].lower()
    args = sys.argv[2:]

    if command == "create":
        if len(args) not in (3, 4):
            print("❌ Error: email, password and name required for create command")
            print("Usage: python manage_users.py create <email> <password> <name> [role]")
            return 1
        role = args[3] if len(args) == 4 else Role.USER.value
    elif command == "set-role":
        if len(args) != 2:
            print("❌ Error: email and role required for set-role command")
            print("Usage: python manage_users.py set-role <email> <role>")
            return 1
        role = args[1]
    else:
        print(f"❌ Unknown command: {command}")
        print("Available commands: create, set-role")
        return 1

    if role not in ROLES:
        print(f"❌ Error: unknown role '{role}' (expected one of: {', '.join(ROLES)})")
        return 1

    config = APIConfig()

    # Setup logging
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file,
        debug=config.debug
    )

    client = AsyncIOMotorClient(config.mongodb_url)
    try:
        db_service = LibraryDatabaseService(client[config.mongodb_database])
        await db_service.ensure_indexes()

        if command == "create":
            return await create_user(db_service, config, args[0], args[1], args[2], role)
        return await set_role(db_service, args[0], role)
    finally:
        client.close()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
