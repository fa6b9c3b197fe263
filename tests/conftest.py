"""Shared test fixtures."""

from unittest.mock import AsyncMock

import pytest

from listgenius.db import create_engine, create_session_factory, init_models
from listgenius.errors import Unauthenticated
from listgenius.models import CSVRow, GenerationOutcome, ListingOutput, User


class FakeIdentity:
    """In-memory identity provider: tokens map to users, users map to plans."""

    def __init__(self):
        self.plans = {}
        self.tokens = {}

    def add(self, user_id: str, plan: str = "pro") -> str:
        token = f"token-{user_id}"
        self.plans[user_id] = plan
        self.tokens[token] = user_id
        return token

    async def authenticate(self, token: str) -> User:
        user_id = self.tokens.get(token)
        if user_id is None:
            raise Unauthenticated("Unauthorized")
        return await self.get_user(user_id)

    async def get_user(self, user_id: str) -> User:
        if user_id not in self.plans:
            raise Unauthenticated("User not found")
        return User(id=user_id, plan=self.plans[user_id])


def make_listing(title: str = "Generated Listing") -> ListingOutput:
    return ListingOutput(
        title=title,
        description="A lovely product for every occasion.",
        tags=[f"tag{i}" for i in range(1, 14)],
        materials=[f"material{i}" for i in range(1, 14)],
    )


def make_rows(count: int) -> list:
    return [
        CSVRow(productName=f"Product {i}", keywords=[f"keyword{i}", "gift"], rowNumber=i + 1)
        for i in range(count)
    ]


@pytest.fixture
def identity():
    fake = FakeIdentity()
    fake.add("user_pro", "pro")
    fake.add("user_free", "free")
    return fake


@pytest.fixture
def generator():
    mock = AsyncMock()

    async def _generate(row):
        return GenerationOutcome(listing=make_listing(f"{row.productName} listing"), tokensUsed=100, model="gpt-4o")

    mock.generate.side_effect = _generate
    return mock


@pytest.fixture
async def sessions(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_models(engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def sample_csv() -> str:
    return (
        "Product Name,Niche,Target Audience,Keywords,Tone,Word Count\n"
        "Boho Wall Art,Home Decor,Renters,\"boho, wall art\",Creative,300\n"
        "Weekly Planner,Planners,Parents,planner;printable,minimalist,250\n"
        "Birthday Card,Stationery,Friends,card|birthday,,\n"
    )
