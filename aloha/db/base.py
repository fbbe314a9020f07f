from aloha.db.base_class import Base


# IMPORT ALL MODELS HERE (THIS REGISTERS THEM WITH Base.metadata)
from aloha.models.user import User
from aloha.models.token_blacklist import TokenBlacklist
