"""
Reader package for a distributed social timeline.

This package contains the core components:

- Parsing ActivityPub-style records into notes, activities and actors.
- Ingesting followed actors into a local content store.
- Paginating the followed-actors timeline.
- Normalising post content into render-agnostic segments.
- Rewriting embedded actor/post links to local routes.
"""
