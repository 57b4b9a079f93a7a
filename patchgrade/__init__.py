"""
Patch Exercise Grader - Evaluation Engine Package

This package contains the core components for grading edits to starter code:
- markers: Editable region extraction and anchor splitting
- reconcile: Matching student documents to anchors and rebuilding the source
- rules: Compiler for the #require/#forbid/#test/... rule language
- grader: Rule evaluation and region discovery
- sandbox: Isolated evaluation of #test expressions
"""

__version__ = "1.0.0"
