"""
Workflow modules dispatched by the flow manager.

Each module is loaded from its file path on every dispatch and must expose
either ``run(context)`` (sync or async) or a ``workflow`` object with a
``run`` method. Modules here are not imported as a package at runtime.
"""
