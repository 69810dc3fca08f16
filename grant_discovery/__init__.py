"""
Grant discovery: eligibility filtering, relevance scoring, cached enrichment
and ranking of funding opportunities for an applicant profile.
"""
