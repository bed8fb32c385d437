"""HTTP routers, each built by a factory with injected dependencies."""
