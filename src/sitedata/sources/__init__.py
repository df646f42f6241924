"""Request builders for the data sources performed by a host.

Every builder returns a `RequestSource` holding a masked request:

- `sitedata.sources.http`: network requests;
- `sitedata.sources.files`: file reads, with YAML frontmatter support;
- `sitedata.sources.glob`: typed glob patterns over the site files;
- `sitedata.sources.port`: calls to host-defined RPC channels.
"""
