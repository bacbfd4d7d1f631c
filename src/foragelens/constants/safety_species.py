"""Dangerous species surfaced whenever a candidate from the same genus appears."""

SAFETY_SPECIES_BY_GENUS: dict[str, tuple[str, ...]] = {
    # field / horse mushrooms
    "Agaricus": (
        "Amanita phalloides",  # Death Cap
        "Amanita virosa",  # Destroying Angel
        "Clitocybe rivulosa",  # Fool's Funnel
    ),
    "Amanita": (
        "Amanita phalloides",
        "Amanita virosa",
        "Amanita pantherina",  # Panthercap
    ),
    "Clitocybe": ("Clitocybe rivulosa",),
    "Galerina": ("Galerina marginata",),  # Funeral Bell
    "Cortinarius": ("Cortinarius rubellus",),  # Deadly Webcap
    "Lepiota": ("Lepiota brunneoincarnata",),
}
