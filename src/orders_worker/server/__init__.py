"""HTTP surface for the order sync worker."""
