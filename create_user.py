"""
Script to provision a PrintFlow account.

Creates (or reuses) a user with the given role and prints a signed access
token for it. Vendors have no self sign-up, so this is how a print counter
gets onto the system.

Usage:
    python create_user.py vendor vendor@printflow.com "Print Vendor"
    python create_user.py student alice@example.edu "Alice" --phone 9876543210
"""
import argparse
import asyncio

from sqlalchemy import select

from printflow.database import AsyncSessionLocal, create_all
from printflow.models.user import User, UserRole
from printflow.services.jwt_service import JWTService


async def create_user(role: UserRole, email: str, name: str, phone: str | None = None,
                      student_number: str | None = None) -> tuple[User, bool]:
    """Return (user, created). An existing email is reused as-is."""
    await create_all()
    async with AsyncSessionLocal() as session:
        result = await session.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
        if user is not None:
            return user, False

        user = User(email=email, name=name, phone=phone, student_number=student_number, role=role)
        session.add(user)
        await session.commit()
        return user, True


async def main():
    parser = argparse.ArgumentParser(description="Provision a PrintFlow account")
    parser.add_argument("role", choices=[r.value for r in UserRole])
    parser.add_argument("email")
    parser.add_argument("name")
    parser.add_argument("--phone")
    parser.add_argument("--student-number")
    args = parser.parse_args()

    user, created = await create_user(
        UserRole(args.role), args.email, args.name, args.phone, args.student_number
    )
    print("User created successfully!" if created else "User already exists")
    print(f"ID: {user.id}")
    print(f"Role: {user.role.value}")
    print(f"Token: {JWTService().create_token(user.id, user.role.value, user.email)}")


if __name__ == "__main__":
    asyncio.run(main())
