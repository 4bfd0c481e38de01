"""
Top-level package for the legacy WordPress → new site migration utility.

This package bundles the pieces that move a legacy WordPress blog into the
new content store and then verify that the new site still looks like the
old one.  Modules are split into subpackages:

* :mod:`site_migrator.extractors` – WordPress REST client and legacy URL discovery
* :mod:`site_migrator.parsers` – upload URL canonicalization and HTML rewriting
* :mod:`site_migrator.migrators` – media storage backends, media resolver,
  content importer and blob pruner
* :mod:`site_migrator.store` – duckdb backed content/media/settings store
* :mod:`site_migrator.parity` – screenshot based legacy/new parity runner
* :mod:`site_migrator.utils` – logging, run reports, retries and pre-flight checks

Orchestration lives in :mod:`site_migrator.migration_tool`; none of the
lower layers read configuration on their own.
"""

__version__ = "0.3.0"
