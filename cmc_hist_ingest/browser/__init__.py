"""
Browser sub-package for cmc-hist-ingest.

Everything that talks to the WebDriver lives here:
  - session.py: driver creation and the scoped ``BrowserSession``.
  - materialize.py: ``PageMaterializer``, which renders a snapshot page
    to its full row set and hands back the ``RenderedTable``.
"""
