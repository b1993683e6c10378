from typing import Optional

from pydantic import BaseModel

from rewards_ledger.core.exceptions import LedgerError


class OperationResult(BaseModel):
	"""Shape shared by every mutating operation: callers branch on `success`."""
	success: bool
	message: str
	error: Optional[str] = None

	@classmethod
	def failure(cls, exc: LedgerError, **fields):
		return cls(success=False, message=exc.message, error=exc.code.value, **fields)
