"""
Signal Extractors — independent, stateless analyzers.

Components:
- patterns: category-tagged phrase patterns + keyword density (text)
- classifier: pluggable text classifier contract + implementations
- sentiment: lexicon sentiment scalar in [-1, 1] (text)
- billing: statistical outliers + duplicate amounts (billing batches)
- enrollment: consent / identity / phrase checks (enrollment events)
"""
