"""
Observable State Containers

dict/list subclasses that report every write to their owning store with
the mutated path. Paths are derived from the parent chain at write time,
so a child moved by a list insert still reports its current position.

- Element writes report the element path: "items[2]", "user.name"
- Structural list changes (append, insert, sort, ...) report the list path
- Nested dict/list values are wrapped on assignment; callables are kept
  by reference
"""

from collections.abc import Mapping
from typing import Any, Iterable, Optional, Protocol, Union


class MutationObserver(Protocol):
    """Receives mutation notifications from observable containers"""

    def on_mutation(self, path: str) -> None: ...


class Observable:
    """Parent-chain bookkeeping shared by ReactiveDict and ReactiveList"""

    _owner: Optional[MutationObserver] = None
    _parent: Optional["Observable"] = None
    _key: Optional[str] = None

    def _attach(self, owner, parent, key) -> None:
        self._owner = owner
        self._parent = parent
        self._key = key

    def _detach(self) -> None:
        self._owner = None
        self._parent = None
        self._key = None

    def path(self) -> Optional[str]:
        """Current path from the store root; None when detached"""
        parts = []
        node: Observable = self
        while node._parent is not None:
            parent = node._parent
            if isinstance(parent, ReactiveList):
                index = next((i for i, item in enumerate(parent) if item is node), None)
                if index is None:
                    return None
                parts.append(f"[{index}]")
            else:
                parts.append(str(node._key))
            node = parent
        if node._owner is None:
            return None

        path = ""
        for part in reversed(parts):
            if part.startswith("["):
                path += part
            elif path:
                path += "." + part
            else:
                path = part
        return path

    def _notify(self, suffix: Union[str, int, None] = None) -> None:
        owner = self._owner
        if owner is None:
            return
        base = self.path()
        if base is None:
            return
        if suffix is None:
            owner.on_mutation(base)
        elif isinstance(suffix, int):
            owner.on_mutation(f"{base}[{suffix}]")
        else:
            owner.on_mutation(f"{base}.{suffix}" if base else suffix)


def wrap(value: Any, owner, parent: Optional[Observable] = None, key: Optional[str] = None) -> Any:
    """Wrap dict/list values (recursively) into observable containers"""
    if (
        isinstance(value, Observable)
        and value._owner is owner
        and value._parent is parent
        and isinstance(parent, ReactiveDict)
        and value._key == key
    ):
        # Re-assigning a child in place
        return value
    if isinstance(value, Mapping) and not callable(value):
        wrapped = ReactiveDict()
        wrapped._attach(owner, parent, key)
        for k, v in value.items():
            dict.__setitem__(wrapped, k, wrap(v, owner, wrapped, k))
        return wrapped
    if isinstance(value, (list, tuple)):
        wrapped = ReactiveList()
        wrapped._attach(owner, parent, key)
        list.extend(wrapped, (wrap(v, owner, wrapped) for v in value))
        return wrapped
    return value


def unwrap(value: Any) -> Any:
    """Plain deep copy of an observable tree"""
    if isinstance(value, Mapping) and not callable(value):
        return {k: unwrap(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [unwrap(v) for v in value]
    return value


def _release(value: Any, parent: Observable) -> None:
    if isinstance(value, Observable) and value._parent is parent:
        value._detach()


class ReactiveDict(dict, Observable):
    """Observable dict"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)

    def _wrap(self, key, value):
        return wrap(value, self._owner, self, key)

    def __setitem__(self, key, value):
        old = dict.get(self, key)
        if old is not None and old is not value:
            _release(old, self)
        dict.__setitem__(self, key, self._wrap(key, value))
        self._notify(key)

    def __delitem__(self, key):
        old = dict.__getitem__(self, key)
        dict.__delitem__(self, key)
        _release(old, self)
        self._notify(key)

    def pop(self, key, *default):
        existed = key in self
        value = dict.pop(self, key, *default)
        if existed:
            _release(value, self)
            self._notify(key)
        return value

    def popitem(self):
        key, value = dict.popitem(self)
        _release(value, self)
        self._notify(key)
        return key, value

    def setdefault(self, key, default=None):
        if key not in self:
            self[key] = default
        return dict.__getitem__(self, key)

    def update(self, *args, **kwargs):
        for key, value in dict(*args, **kwargs).items():
            self[key] = value

    def __ior__(self, other):
        self.update(other)
        return self

    def clear(self):
        for value in dict.values(self):
            _release(value, self)
        dict.clear(self)
        self._notify()

    def __reduce_ex__(self, protocol):
        return (dict, (unwrap(self),))


class ReactiveList(list, Observable):
    """Observable list"""

    def __init__(self, *args):
        super().__init__(*args)

    def _wrap(self, value):
        return wrap(value, self._owner, self)

    def __setitem__(self, index, value):
        if isinstance(index, slice):
            for old in list.__getitem__(self, index):
                _release(old, self)
            list.__setitem__(self, index, [self._wrap(v) for v in value])
            self._notify()
            return
        position = index if index >= 0 else len(self) + index
        old = list.__getitem__(self, index)
        if old is not value:
            _release(old, self)
            list.__setitem__(self, index, self._wrap(value))
        self._notify(position)

    def __delitem__(self, index):
        removed = list.__getitem__(self, index)
        list.__delitem__(self, index)
        for old in removed if isinstance(index, slice) else [removed]:
            _release(old, self)
        self._notify()

    def append(self, value):
        list.append(self, self._wrap(value))
        self._notify()

    def extend(self, values: Iterable):
        list.extend(self, [self._wrap(v) for v in values])
        self._notify()

    def __iadd__(self, values):
        self.extend(values)
        return self

    def insert(self, index, value):
        list.insert(self, index, self._wrap(value))
        self._notify()

    def pop(self, index=-1):
        value = list.pop(self, index)
        _release(value, self)
        self._notify()
        return value

    def remove(self, value):
        for i, item in enumerate(self):
            if item is value or item == value:
                del self[i]
                return
        raise ValueError("ReactiveList.remove(x): x not in list")

    def clear(self):
        for value in self:
            _release(value, self)
        list.clear(self)
        self._notify()

    def sort(self, *args, **kwargs):
        list.sort(self, *args, **kwargs)
        self._notify()

    def reverse(self):
        list.reverse(self)
        self._notify()

    def __imul__(self, count):
        items = list(self)
        list.__imul__(self, 0)
        for _ in range(max(count, 0)):
            list.extend(self, [self._wrap(unwrap(v)) for v in items])
        self._notify()
        return self

    def __reduce_ex__(self, protocol):
        return (list, (unwrap(self),))
