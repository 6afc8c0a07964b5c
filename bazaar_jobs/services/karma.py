"""Karma scoring.

karma = sum(floor(upvotes * role multiplier)) over the user's collaborations
      + FEATURED_BONUS for every featured project the user created.
"""
import math
import uuid
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bazaar_jobs.models.enums import CollaboratorRole
from bazaar_jobs.models.project import Collaborator, Project

ROLE_MULTIPLIERS: dict[str, float] = {
    CollaboratorRole.CREATOR.value: 1.0,
    CollaboratorRole.CONTRIBUTOR.value: 0.5,
    CollaboratorRole.ADVISOR.value: 0.25,
}
FEATURED_BONUS = 100


@dataclass(frozen=True)
class CollaborationScore:
    role: str
    upvote_count: int
    is_featured: bool


def _role_value(role) -> str:
    # Roles come back from the String column as plain str
    return role.value if isinstance(role, CollaboratorRole) else str(role)


def calculate_karma(collaborations: Iterable[CollaborationScore]) -> int:
    total = 0
    featured_created = 0
    for c in collaborations:
        role = _role_value(c.role)
        total += math.floor(c.upvote_count * ROLE_MULTIPLIERS.get(role, 0))
        if role == CollaboratorRole.CREATOR.value and c.is_featured:
            featured_created += 1
    return total + featured_created * FEATURED_BONUS


async def load_collaborations(db: AsyncSession, user_id: uuid.UUID) -> list[CollaborationScore]:
    rows = await db.execute(
        select(Collaborator.role, Project.upvote_count, Project.is_featured)
        .join(Project, Project.id == Collaborator.project_id)
        .where(Collaborator.user_id == user_id)
    )
    return [
        CollaborationScore(role=role, upvote_count=upvotes or 0, is_featured=bool(featured))
        for role, upvotes, featured in rows
    ]


async def compute_user_karma(db: AsyncSession, user_id: uuid.UUID) -> int:
    return calculate_karma(await load_collaborations(db, user_id))
