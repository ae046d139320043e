from .api import RemoteApi
from .config import ClientConfig
from .mutations import MutationKind, PAYLOAD_TYPES
from .queue_store import QueueStore, QueuedMutation
from .replication import ReplicationClient, is_leader_device
from .sync import DrainResult, MutationQueue, QueueState

__all__ = [
    'RemoteApi',
    'ClientConfig',
    'MutationKind', 'PAYLOAD_TYPES',
    'QueueStore', 'QueuedMutation',
    'ReplicationClient', 'is_leader_device',
    'DrainResult', 'MutationQueue', 'QueueState',
]
