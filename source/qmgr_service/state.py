"""Process-wide service objects shared by every router."""

from implementations import ProcessSupervisor, VMStore, make_store

store: VMStore = make_store()
supervisor: ProcessSupervisor = ProcessSupervisor()
