"""Social feed domain: normalization, discovery, tokens and the proxy."""
