"""feedimport - import remote feeds into local Markdown/HTML files.

Quick usage::

    import asyncio
    from feedimport import Importer, ImportSettings

    importer = Importer(ImportSettings(output_folder="content"))
    importer.add_source("rss", "https://example.com/feed.xml")
    asyncio.run(importer.run())

Plugin extension points::

    from feedimport import register_formatter

    class Upper:
        name = "upper"
        languages = ("sql",)
        def format(self, code, language):
            return code.upper()

    register_formatter(Upper())
"""

from feedimport.fetcher import FetchError, Fetcher
from feedimport.importer import Importer, PathConflictError
from feedimport.items import AssetRecord, Author, Entry
from feedimport.persist import Persist, PersistError
from feedimport.plugins import register_formatter, register_source_type
from feedimport.settings import VERSION, ImportSettings, load_settings

__version__ = VERSION
__all__ = [
    "AssetRecord",
    "Author",
    "Entry",
    "FetchError",
    "Fetcher",
    "ImportSettings",
    "Importer",
    "PathConflictError",
    "Persist",
    "PersistError",
    "load_settings",
    "register_formatter",
    "register_source_type",
]
