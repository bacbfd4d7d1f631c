from foragelens.constants.safety_species import SAFETY_SPECIES_BY_GENUS

__all__ = ["SAFETY_SPECIES_BY_GENUS"]
