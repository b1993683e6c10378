from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_ledger.models import ReferralRelation

# nothing above this depth is ever looked at
MAX_INVITE_LEVEL = 3


class InviteLevelResolver:
	"""
	Walks the invite chain upwards ("who invited this user?").

	Level = number of hops from a user up to the root of its chain:
	0 for a user nobody invited, capped at MAX_INVITE_LEVEL.
	The walk is a bounded loop with a hop counter. A user seen twice stops
	it: invitee uniqueness plus the cycle check on redemption make cycles
	impossible, the guard only keeps a corrupted chain from looping.
	"""

	def __init__(self, session: AsyncSession):
		self.session = session

	async def inviter_of(self, user_id: str) -> str | None:
		return await self.session.scalar(
			select(ReferralRelation.inviter_id)
			.where(ReferralRelation.invitee_id == user_id)
		)

	async def get_upline(self, user_id: str, max_hops: int = MAX_INVITE_LEVEL) -> list[str]:
		"""Ancestors of `user_id`, direct inviter first, at most `max_hops` of them."""
		upline: list[str] = []
		visited = {user_id}
		current = user_id
		hops = 0
		while hops < max_hops:
			inviter = await self.inviter_of(current)
			if inviter is None or inviter in visited:
				break
			upline.append(inviter)
			visited.add(inviter)
			current = inviter
			hops += 1
		return upline

	async def get_invite_level(self, user_id: str) -> int:
		return len(await self.get_upline(user_id, MAX_INVITE_LEVEL))
