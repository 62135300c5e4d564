"""
Survey Graph Package

Builds branching surveys as directed graphs and runs them for respondents.

LAYERS:
-------
    - model:          the normalized survey document (questions, sections, layout)
    - graph:          the editable node/edge view with start/end sentinels
    - transform:      graph <-> document conversion
    - validator:      structural diagnostics that gate export
    - session:        the single-writer editing session
    - navigation:     next-question resolution and answer validation
    - runner:         a respondent walking a compiled document

The document is the only interchange format. The graph exists for editing,
and the navigation layer never looks at it.
"""

__version__ = "0.1.0"
