import abc

from flow_orchestrator.util.telemetry import orchestrator_telemetry


class Node(abc.ABC):
    """Runtime counterpart of a declared node, bound to its name and spec."""

    def __init__(self,
                 name: str,
                 data=None,
                 debug: bool = False,
                 **kwargs):
        self.name = name
        self.data = data
        self.debug = debug
        self.ref = data.resolve_ref(name) if data is not None else name

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        # Automatically decorate the `process` method of the subclass
        if 'process' in cls.__dict__:
            cls.process = orchestrator_telemetry(cls.process)

    def get_debug(self):
        return self.debug

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name!r}, ref={self.ref!r})"
