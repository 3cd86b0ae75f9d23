"""Maven support: POM parsing, descriptors and the maven managers."""
