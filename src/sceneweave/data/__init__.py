"""Scene packs bundled with sceneweave."""
