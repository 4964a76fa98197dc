"""Memory domain: fragments, outcome cards and the fragment store."""

from cuidado.memory.schemas import create_fragment
from cuidado.memory.schemas import Fragment
from cuidado.memory.schemas import OutcomeCard
from cuidado.memory.store import FragmentStore
from cuidado.memory.store import RedisFragmentStore

__all__ = [
    "Fragment",
    "FragmentStore",
    "OutcomeCard",
    "RedisFragmentStore",
    "create_fragment",
]
