"""HTTP surface for the sweep builders."""
