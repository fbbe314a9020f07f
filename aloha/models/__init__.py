from aloha.models.user import User, UserRole
from aloha.models.token_blacklist import TokenBlacklist
