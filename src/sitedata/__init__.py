"""Request resolution engine for static-site data.

The `sitedata` package resolves declarative data sources (HTTP fetches,
file reads, directory globs and host RPCs) into concrete values for the
pages of a static site.

Key features:
- composable data source expressions with dependent continuations;
- decoders tracking the JSON fields they consume, so cached responses
  are stripped to the minimal data the pages need;
- deterministic request hashing with secret masking;
- an asynchronous convergence loop batching every missing request of a
  round into a single host call;
- typed glob patterns over the site files.
"""
