"""
copro_modules -- business areas of the condominium accounting engine.

Each sub-package follows the same layout:

* ``models.py``  -- frozen dataclass DTOs returned to callers.
* ``orm.py``     -- SQLAlchemy persistence (``to_dto`` / ``from_dto``).
* ``service.py`` -- the public facade; each method owns its transaction.
* ``config.py`` / ``workflows.py`` where the area has settings or a
  lifecycle.

Modules import from ``copro_kernel``, ``copro_engines`` and
``copro_config``; the kernel never imports from here.
"""
