"""Page integrity analysis for pharmaceutical batch records.

Detects hand-drawn corrections (strike-throughs, red ink, erasures) on
rendered page images and validates hand-written approval sign-offs
against the mandated approval sequence.
"""
