# Import every table module so SQLModel.metadata is complete whichever model is imported first.
from . import auth, boards, checklists, documents, entities, messaging, rules  # noqa: F401
