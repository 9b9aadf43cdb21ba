"""Seed a handful of demo members and a mutual like between two of them."""
import asyncio

from sqlalchemy import select

from mantrana.database import dispose_engine, get_session_factory
from mantrana.models.user import User
from mantrana.schemas.user import ProfileData, UserCreate
from mantrana.services.like_service import LikeRecorder
from mantrana.services.user_service import UserService


DEMO_USERS = [
    {
        "email": "priya.sharma@gmail.com",
        "gender": "female",
        "profile": {
            "name": "Priya Sharma",
            "age": 27,
            "profession": "Software Engineer",
            "location": "Bengaluru",
            "education": "B.Tech",
            "about": "Weekend trekker, weekday debugger.",
            "interests": ["trekking", "music", "cooking"],
            "images": "https://images.example.org/priya.jpg",
        },
    },
    {
        "email": "arjun.mehta@gmail.com",
        "gender": "male",
        "profile": {
            "name": "Arjun Mehta",
            "age": 29,
            "profession": "Architect",
            "location": "Bengaluru",
            "education": "M.Arch",
            "about": "Sketches buildings, cooks biryani.",
            "interests": ["cooking", "music", "cricket"],
            "images": [
                "https://images.example.org/arjun-1.jpg",
                "https://images.example.org/arjun-2.jpg",
            ],
        },
    },
    {
        "email": "kavya.iyer@yahoo.com",
        "gender": "female",
        "profile": {
            "name": "Kavya Iyer",
            "age": 31,
            "profession": "Doctor",
            "location": "Chennai",
            "education": "MBBS",
            "interests": ["classical dance", "reading"],
        },
    },
    {
        "email": "rohan.gupta@outlook.com",
        "gender": "male",
        "profile": {
            "name": "Rohan Gupta",
            "age": 33,
            "profession": "Chartered Accountant",
            "location": "Mumbai",
            "interests": ["reading", "travel"],
        },
    },
]


async def seed():
    users = UserService()
    recorder = LikeRecorder()
    seeded: dict[str, User] = {}

    async with get_session_factory()() as session:
        for data in DEMO_USERS:
            existing = await session.scalar(select(User).where(User.email == data["email"]))
            if existing is not None:
                print(f"  {data['email']} already exists, skipping.")
                seeded[data["email"]] = existing
                continue
            payload = UserCreate(
                email=data["email"],
                gender=data["gender"],
                status="active",
                profile=ProfileData.model_validate(data["profile"]),
            )
            user = await users.create_user(payload, session)
            seeded[data["email"]] = user
            print(f"  Seeded {user.email} ({user.profile_completeness}% complete)")

        priya = seeded["priya.sharma@gmail.com"]
        arjun = seeded["arjun.mehta@gmail.com"]
        await recorder.record_like(priya.id, arjun.id, session)
        result = await recorder.record_like(arjun.id, priya.id, session)
        print(f"  Priya <-> Arjun mutual: {result['is_mutual_match']}")

        await session.commit()
    await dispose_engine()
    print("Done seeding users.")


if __name__ == "__main__":
    asyncio.run(seed())
