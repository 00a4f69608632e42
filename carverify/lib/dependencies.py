"""
Optional dependencies are imported lazily: functions decorated with
`carverify.lib.dependencies.dependency` return the imported module on first use, or a
`carverify.lib.dependencies.MissingModule` placeholder when the import fails.
"""
from __future__ import annotations

from typing import Callable, Collection, Generic, TypeVar, cast

Mod = TypeVar('Mod')


class MissingDependency(ImportError):
    """
    An optional dependency is required for the requested operation but it is not installed.
    """
    def __init__(self, name: str, dist: Collection[str] = (), info: str | None = None):
        message = F'this operation requires the package "{name}"'
        if dist:
            extras = ','.join(dist)
            message = F'{message}; install it directly or with the [{extras}] extra'
        if info:
            message = F'{message}. {info}'
        super().__init__(message, name=name)


class MissingModule:
    """
    This class can wrap a module import that is currently missing. If any attribute of the missing
    module is accessed, it raises `carverify.lib.dependencies.MissingDependency`.
    """
    def __init__(self, name, dist: Collection[str] = (), info=None, error=None):
        self.name = name
        self.dist = dist
        self.info = info
        self.error = error

    def __bool__(self):
        return False

    def __getattr__(self, key: str):
        if key.startswith('__') and key.endswith('__'):
            raise AttributeError(key)
        raise MissingDependency(self.name, self.dist, self.info) from self.error


class LazyDependency(Generic[Mod]):
    """
    A lazily evaluated dependency. Calling the object returns either the return value of the
    wrapped import function, which should be an imported module, or a
    `carverify.lib.dependencies.MissingModule` wrapper.
    """
    __slots__ = (
        '_mod',
        '_imp',
        'name',
        'dist',
        'info',
    )

    def __init__(self, imp: Callable[[], Mod], name: str, dist: Collection[str], info: str | None):
        self.name = name
        self.dist = dist
        self.info = info
        self._imp = imp
        self._mod: Mod | None = None

    def __call__(self) -> Mod:
        if (mod := self._mod) is None:
            try:
                mod = self._imp()
            except ImportError as error:
                mod = cast(Mod, MissingModule(self.name, self.dist, self.info, error))
            self._mod = mod
        return mod


def dependency(name: str, dist: Collection[str] = (), info: str | None = None):
    """
    A decorator to mark up an optional dependency. The decorated function imports the module and
    returns the module object. The `name` argument specifies the name of the distribution, while
    `dist` lists the extras of this package that install it.
    """
    def decorator(imp: Callable[[], Mod]):
        return LazyDependency(imp, name, dist, info)
    return decorator
