"""Repository system: packages, sources and the managers that install them."""
