"""Exceptions shared across the routing and execution pipeline."""


class NoSuitableWorker(Exception):
	"""Raised when there is no worker to route a request to."""
	pass


class GenerationError(Exception):
	"""Raised when the text-generation service fails or times out."""
	pass


class MalformedAnalysis(Exception):
	"""Raised when an analysis reply does not satisfy its schema."""

	def __init__(self, schema: str, reason: str):
		self.schema = schema
		self.reason = reason
		super().__init__(f"Malformed {schema} analysis: {reason}")


class SessionBusyError(Exception):
	"""Raised when a session already has a live execution."""
	pass


class ExecutionStateError(Exception):
	"""Raised when an execution is not in the status an operation requires."""
	pass


class StoreError(Exception):
	"""Raised when the behavior store cannot read or write a record."""
	pass
