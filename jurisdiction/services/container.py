# jurisdiction/services/container.py
from datetime import timedelta
from typing import Callable

from jurisdiction.services.access import AccessControlEngine
from jurisdiction.services.cache import ScopeCache
from jurisdiction.services.content_service import ContentService
from jurisdiction.services.hierarchy_service import HierarchyService
from jurisdiction.services.normalization import DEFAULT_LOCK_TOLERANCE
from jurisdiction.services.provisioning import AdminProvisioningService
from jurisdiction.services.scope import ScopeDerivationEngine
from jurisdiction.services.store import HierarchyStore
from jurisdiction.services.user_service import UserService


class ServiceContainer:
    """Wires the engines and services around one store and one cache."""

    def __init__(
        self,
        store: HierarchyStore,
        cache: ScopeCache,
        hash_password: Callable[[str], str],
        lock_tolerance: timedelta = DEFAULT_LOCK_TOLERANCE,
    ):
        self.store = store
        self.cache = cache
        self.scope = ScopeDerivationEngine(store)
        self.access = AccessControlEngine(store)
        self.hierarchy = HierarchyService(
            store, self.scope, self.access, cache, lock_tolerance
        )
        self.provisioning = AdminProvisioningService(store, self.access, hash_password)
        self.users = UserService(store, self.access)
        self.content = ContentService(store, self.scope, self.access)
