# ===============================================================================
# TEST FACTORIES - CENTRALIZED TEST DATA GENERATION
# ===============================================================================
"""
Factory module for generating test data across HydroBill.

Usage:
    from tests.factories.hydrobill import create_metered_block, create_standard_tariffs

    create_standard_tariffs(2025)
    bulk_meter = create_metered_block("BM-001")
"""
