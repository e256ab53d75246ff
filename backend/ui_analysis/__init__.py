"""
Hybrid UI analysis for screenshot-to-code.

This package analyzes UI mockup images with pixel-level heuristics (regions,
layout grid, color palette, OCR text), parses a free-text description of the
same design, and fuses both into one confidence-scored analysis that code
generation prompts can consume.
"""
