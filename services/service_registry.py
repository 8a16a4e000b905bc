"""
Service Registry
Lazy factory-based wiring for repositories, clients and pipeline services
"""
from typing import Dict, Any, Callable, Optional, List
from enum import Enum
import threading
import logging

logger = logging.getLogger(__name__)


class ServiceLifecycle(Enum):
    """How long a resolved service instance lives"""
    SINGLETON = "singleton"  # One per application
    TRANSIENT = "transient"  # Built on every get()


class ServiceDescriptor:
    """Registration record for one service"""

    def __init__(self, name: str, factory: Callable,
                 lifecycle: ServiceLifecycle = ServiceLifecycle.SINGLETON,
                 dependencies: Optional[List[str]] = None):
        self.name = name
        self.factory = factory
        self.lifecycle = lifecycle
        self.dependencies = list(dependencies or [])
        self.instance = None
        self.lock = threading.Lock()


class ServiceRegistry:
    """
    Resolves services by name.

    Factories receive their declared dependencies as keyword arguments, so
    a factory registered with dependencies=['contact_repository'] is called
    as factory(contact_repository=...). Cycles are reported at resolution time
    and by get_initialization_order().
    """

    def __init__(self):
        self._descriptors: Dict[str, ServiceDescriptor] = {}
        self._resolving = threading.local()
        self._lock = threading.Lock()

    def register_factory(self, name: str, factory: Callable,
                         lifecycle: ServiceLifecycle = ServiceLifecycle.SINGLETON,
                         dependencies: Optional[List[str]] = None) -> None:
        if factory is None:
            raise ValueError(f"A factory must be provided for '{name}'")
        with self._lock:
            self._descriptors[name] = ServiceDescriptor(name, factory, lifecycle, dependencies)

    def register_singleton(self, name: str, factory: Callable, **kwargs) -> None:
        self.register_factory(name, factory, ServiceLifecycle.SINGLETON, **kwargs)

    def register_instance(self, name: str, instance: Any) -> None:
        """Register an already-built object, e.g. a test double"""
        descriptor = ServiceDescriptor(name, lambda: instance)
        descriptor.instance = instance
        with self._lock:
            self._descriptors[name] = descriptor

    def get(self, name: str) -> Any:
        """
        Resolve a service, building it and its dependencies on first use.

        Raises:
            ValueError: If the service is not registered
            RuntimeError: If resolving it would recurse into itself
        """
        descriptor = self._descriptors.get(name)
        if descriptor is None:
            raise ValueError(f"Service '{name}' is not registered")

        stack = self._stack()
        if name in stack:
            raise RuntimeError(f"Circular dependency detected: {' -> '.join(stack + [name])}")

        if descriptor.lifecycle == ServiceLifecycle.TRANSIENT:
            return self._build(descriptor)

        if descriptor.instance is not None:
            return descriptor.instance
        with descriptor.lock:
            if descriptor.instance is None:
                descriptor.instance = self._build(descriptor)
            return descriptor.instance

    def _build(self, descriptor: ServiceDescriptor) -> Any:
        stack = self._stack()
        stack.append(descriptor.name)
        try:
            kwargs = {dep: self.get(dep) for dep in descriptor.dependencies}
            instance = descriptor.factory(**kwargs)
        finally:
            stack.pop()
        logger.debug(f"Created service instance: {descriptor.name}")
        return instance

    def _stack(self) -> List[str]:
        if not hasattr(self._resolving, 'stack'):
            self._resolving.stack = []
        return self._resolving.stack

    def has(self, name: str) -> bool:
        return name in self._descriptors

    def validate_dependencies(self) -> List[str]:
        """
        Returns:
            One message per dependency that names an unregistered service
        """
        return [
            f"Service '{name}' depends on unregistered service '{dep}'"
            for name, descriptor in self._descriptors.items()
            for dep in descriptor.dependencies
            if dep not in self._descriptors
        ]

    def get_initialization_order(self) -> List[str]:
        """
        Topologically sort services so each comes after its dependencies.

        Raises:
            RuntimeError: If the graph has a cycle
        """
        done = set()
        order = []

        def visit(node: str, path: List[str]):
            if node in path:
                raise RuntimeError(f"Circular dependency detected: {' -> '.join(path + [node])}")
            if node in done:
                return
            descriptor = self._descriptors.get(node)
            for dep in (descriptor.dependencies if descriptor else []):
                visit(dep, path + [node])
            done.add(node)
            order.append(node)

        for name in list(self._descriptors):
            visit(name, [])
        return order

    def warmup(self, services: List[str]) -> None:
        """Build the named singletons up front, dependencies first"""
        for name in self.get_initialization_order():
            if name in services:
                logger.info(f"Warming up service: {name}")
                self.get(name)


def create_registry() -> ServiceRegistry:
    return ServiceRegistry()
