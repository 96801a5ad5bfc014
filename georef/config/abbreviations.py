# georef/config/abbreviations.py
"""
Search expansions for common short forms of Philippine place names.
"""

ABBREVIATIONS = {
    # ========== NCR / METRO MANILA ==========
    'qc': ['quezon city'],
    'bgc': ['bonifacio global city', 'taguig'],
    'mm': ['metro manila', 'manila'],
    'ncr': ['national capital region', 'metro manila'],
    'mla': ['manila'],
    'makat': ['makati'],
    'pasig': ['pasig city'],
    'taguig': ['taguig city'],

    # ========== CALABARZON ==========
    'cav': ['cavite'],
}

# Keywords whose "X <keyword>" / "<keyword> of X" forms are interchangeable
LOCALITY_KEYWORDS = ('city', 'municipality')
