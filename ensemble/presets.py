"""
Static musical vocabulary.

Everything here is opaque configuration data: the runtime never interprets
a mood name, a texture name or a zone label beyond using it as a key. The
numbers come from the instrument's sound design and can be replaced
wholesale by descriptors loaded through `ensemble.scenario`.

Contents:
- energy_descriptor(): eleven energy states with era mode profiles
- ZONE_DYNAMICS: per-zone bias applied on top of energy characteristics
- mood_descriptor(): eleven moods with era mode profiles
- MOOD_VOICES: which managed voice plays in which mood, and how
- MUSICAL_FORMS: section plans the orchestrator walks through
- ERA_MOODS / ERA_FORMS / ERA_TEMPOS: era adaptation tables
- TEXTURE_LIBRARY / TEXTURE_COMBINATIONS / ZONE_TEXTURE_MAP
"""

from typing import Any, Dict, List

from .schemas import FormSection, MusicalForm
from .statemachine.schemas import ModeProfile, StateDefinition, StateMachineDescriptor

ERAS = ("genesis", "primordial", "tribal", "sacred", "modern")
VOICES = ("drums", "bass", "harmony", "lead", "texture")


# ============================================================================
# Energy states
# ============================================================================

# name: (level, (volume, density, tempo, complexity, brightness),
#        (drums, bass, harmony, lead, texture) intensities, successors, dwell range)
_ENERGY_TABLE = {
    "dormant": (0, (0.1, 0.1, 0.5, 0.1, 0.2), (0, 0, 0.2, 0, 0.3), ["emerging", "ambient"], (5, 20)),
    "ambient": (1, (0.25, 0.2, 0.6, 0.2, 0.3), (0, 0.2, 0.4, 0, 0.5), ["dormant", "emerging", "contemplative"], (10, 60)),
    "emerging": (2, (0.35, 0.3, 0.7, 0.3, 0.4), (0.3, 0.4, 0.5, 0, 0.4), ["ambient", "contemplative", "building"], (8, 30)),
    "contemplative": (3, (0.45, 0.4, 0.8, 0.4, 0.5), (0.5, 0.6, 0.6, 0.3, 0.3), ["emerging", "ambient", "building", "flowing"], (15, 90)),
    "flowing": (4, (0.55, 0.5, 0.85, 0.5, 0.55), (0.6, 0.7, 0.65, 0.5, 0.35), ["contemplative", "building", "intensifying"], (20, 120)),
    "building": (5, (0.65, 0.6, 0.9, 0.6, 0.65), (0.75, 0.8, 0.7, 0.6, 0.4), ["flowing", "contemplative", "intensifying", "climactic"], (10, 45)),
    "intensifying": (6, (0.75, 0.75, 0.95, 0.7, 0.75), (0.85, 0.9, 0.8, 0.75, 0.5), ["building", "climactic", "transcendent"], (8, 30)),
    "climactic": (7, (0.85, 0.85, 1.0, 0.8, 0.85), (0.95, 1.0, 0.9, 0.9, 0.6), ["intensifying", "transcendent", "releasing"], (5, 20)),
    "transcendent": (8, (0.9, 0.7, 1.0, 0.9, 0.95), (0.8, 0.7, 1.0, 1.0, 0.8), ["climactic", "releasing", "dissolving"], (5, 15)),
    "releasing": (6, (0.65, 0.5, 0.85, 0.5, 0.6), (0.6, 0.6, 0.7, 0.5, 0.5), ["climactic", "transcendent", "dissolving", "flowing"], (10, 40)),
    "dissolving": (3, (0.35, 0.25, 0.7, 0.3, 0.4), (0.3, 0.4, 0.5, 0, 0.4), ["releasing", "ambient", "dormant", "contemplative"], (15, 60)),
}

_CHARACTERISTIC_KEYS = ("volume", "density", "tempo", "complexity", "brightness")

# voice -> states in which it is switched off
_SILENT_VOICES = {
    "drums": ("dormant", "ambient"),
    "lead": ("dormant", "ambient", "emerging", "dissolving"),
}

_ENERGY_MODES = {
    "genesis": ModeProfile(
        preferred_states=["dormant", "ambient", "emerging"],
        max_state="contemplative",
        transition_speed=0.3,
        volatility=0.1,
        default_state="ambient",
    ),
    "primordial": ModeProfile(
        preferred_states=["ambient", "emerging", "contemplative", "flowing"],
        max_state="building",
        transition_speed=0.4,
        volatility=0.2,
        default_state="emerging",
    ),
    "tribal": ModeProfile(
        preferred_states=["contemplative", "flowing", "building", "intensifying"],
        max_state="climactic",
        transition_speed=0.6,
        volatility=0.4,
        default_state="contemplative",
    ),
    "sacred": ModeProfile(
        preferred_states=["ambient", "contemplative", "building", "transcendent"],
        max_state="transcendent",
        transition_speed=0.5,
        volatility=0.3,
        default_state="contemplative",
    ),
    "modern": ModeProfile(
        preferred_states=["flowing", "building", "intensifying", "climactic"],
        max_state="transcendent",
        transition_speed=0.7,
        volatility=0.5,
        default_state="flowing",
    ),
}

BUILD_SEQUENCE: List[str] = ["contemplative", "flowing", "building", "intensifying", "climactic"]
RELEASE_SEQUENCE: List[str] = ["releasing", "dissolving", "ambient", "dormant"]


def energy_descriptor() -> StateMachineDescriptor:
    """Energy/dynamics state machine: dormant up to transcendent and back."""
    states = {}
    for name, (level, values, intensities, successors, dwell) in _ENERGY_TABLE.items():
        states[name] = StateDefinition(
            level=level,
            characteristics=dict(zip(_CHARACTERISTIC_KEYS, values)),
            intensities=dict(zip(VOICES, intensities)),
            active={voice: name not in _SILENT_VOICES.get(voice, ()) for voice in VOICES},
            successors=successors,
            dwell_range=dwell,
        )
    return StateMachineDescriptor(
        name="energy",
        states=states,
        default_state="ambient",
        modes={name: profile.model_copy() for name, profile in _ENERGY_MODES.items()},
        curve="ease_in_out",
        base_duration=2.0,
        duration_per_level=0.5,
        transition_speed=0.5,
        volatility=0.3,
        decision_interval=3.0,
    )


# Zone bias: (energy_bias, brightness_boost, density_mod)
ZONE_DYNAMICS: Dict[str, Dict[str, float]] = {
    "top-left": {"energy_bias": 0.1, "brightness_boost": 0.1, "density_mod": -0.1},
    "top-center": {"energy_bias": 0.2, "brightness_boost": 0.15, "density_mod": 0.0},
    "top-right": {"energy_bias": 0.15, "brightness_boost": 0.2, "density_mod": 0.05},
    "middle-left": {"energy_bias": -0.1, "brightness_boost": -0.05, "density_mod": -0.05},
    "center": {"energy_bias": 0.0, "brightness_boost": 0.0, "density_mod": 0.0},
    "middle-right": {"energy_bias": 0.1, "brightness_boost": 0.05, "density_mod": 0.1},
    "bottom-left": {"energy_bias": -0.15, "brightness_boost": -0.1, "density_mod": -0.1},
    "bottom-center": {"energy_bias": 0.05, "brightness_boost": 0.0, "density_mod": 0.15},
    "bottom-right": {"energy_bias": 0.25, "brightness_boost": 0.1, "density_mod": 0.2},
}


# ============================================================================
# Moods
# ============================================================================

# name: (tempo, energy, complexity, brightness, tension)
_MOOD_TABLE = {
    "serene": (0.4, 0.3, 0.3, 0.5, 0.1),
    "contemplative": (0.35, 0.25, 0.4, 0.4, 0.2),
    "mystical": (0.45, 0.4, 0.5, 0.6, 0.3),
    "flowing": (0.5, 0.5, 0.5, 0.6, 0.3),
    "energetic": (0.7, 0.8, 0.6, 0.7, 0.5),
    "ecstatic": (0.85, 1.0, 0.7, 0.9, 0.6),
    "somber": (0.35, 0.3, 0.4, 0.3, 0.4),
    "ominous": (0.4, 0.5, 0.5, 0.2, 0.7),
    "intense": (0.65, 0.9, 0.8, 0.5, 0.9),
    "building": (0.55, 0.6, 0.5, 0.6, 0.5),
    "releasing": (0.5, 0.4, 0.4, 0.5, 0.2),
}

_MOOD_KEYS = ("tempo", "energy", "complexity", "brightness", "tension")

_MOOD_SUCCESSORS = {
    "serene": ["contemplative", "mystical", "flowing"],
    "contemplative": ["serene", "mystical", "somber", "flowing"],
    "mystical": ["serene", "contemplative", "flowing", "ominous"],
    "flowing": ["mystical", "building", "energetic", "contemplative", "releasing"],
    "energetic": ["flowing", "building", "ecstatic", "intense", "releasing"],
    "ecstatic": ["energetic", "intense", "releasing"],
    "somber": ["contemplative", "ominous", "serene"],
    "ominous": ["somber", "mystical", "intense"],
    "intense": ["ominous", "energetic", "ecstatic", "releasing"],
    "building": ["flowing", "energetic", "intense", "ecstatic"],
    "releasing": ["flowing", "contemplative", "serene", "somber"],
}

_MOOD_DWELL = {
    "serene": (20, 90),
    "contemplative": (20, 90),
    "mystical": (20, 80),
    "flowing": (15, 60),
    "energetic": (15, 50),
    "ecstatic": (10, 30),
    "somber": (20, 80),
    "ominous": (15, 60),
    "intense": (10, 40),
    "building": (8, 30),
    "releasing": (8, 30),
}

# Voice plan per mood: voice -> (active, sound type)
MOOD_VOICES: Dict[str, Dict[str, Dict[str, Any]]] = {
    "serene": {"drums": {"active": False}, "bass": {"active": True, "type": "sub"}, "harmony": {"active": True, "type": "pad"}, "melody": {"active": True, "type": "ethereal"}},
    "contemplative": {"drums": {"active": False}, "bass": {"active": True, "type": "drone"}, "harmony": {"active": True, "type": "sustained"}, "melody": {"active": True, "type": "sparse"}},
    "mystical": {"drums": {"active": True, "type": "subtle"}, "bass": {"active": True, "type": "resonant"}, "harmony": {"active": True, "type": "open"}, "melody": {"active": True, "type": "ornamental"}},
    "flowing": {"drums": {"active": True, "type": "groove"}, "bass": {"active": True, "type": "walking"}, "harmony": {"active": True, "type": "moving"}, "melody": {"active": True, "type": "lyrical"}},
    "energetic": {"drums": {"active": True, "type": "driving"}, "bass": {"active": True, "type": "punchy"}, "harmony": {"active": True, "type": "rhythmic"}, "melody": {"active": True, "type": "aggressive"}},
    "ecstatic": {"drums": {"active": True, "type": "intense"}, "bass": {"active": True, "type": "808_deep"}, "harmony": {"active": True, "type": "euphoric"}, "melody": {"active": True, "type": "soaring"}},
    "somber": {"drums": {"active": False}, "bass": {"active": True, "type": "low"}, "harmony": {"active": True, "type": "minor"}, "melody": {"active": True, "type": "melancholic"}},
    "ominous": {"drums": {"active": True, "type": "sparse"}, "bass": {"active": True, "type": "rumble"}, "harmony": {"active": True, "type": "dissonant"}, "melody": {"active": False}},
    "intense": {"drums": {"active": True, "type": "aggressive"}, "bass": {"active": True, "type": "distorted"}, "harmony": {"active": True, "type": "dense"}, "melody": {"active": True, "type": "angular"}},
    "building": {"drums": {"active": True, "type": "building"}, "bass": {"active": True, "type": "ascending"}, "harmony": {"active": True, "type": "layering"}, "melody": {"active": True, "type": "rising"}},
    "releasing": {"drums": {"active": True, "type": "unwinding"}, "bass": {"active": True, "type": "descending"}, "harmony": {"active": True, "type": "resolving"}, "melody": {"active": True, "type": "settling"}},
}

ERA_MOODS: Dict[str, str] = {
    "genesis": "serene",
    "primordial": "mystical",
    "tribal": "flowing",
    "sacred": "contemplative",
    "modern": "energetic",
}

_MOOD_MODES = {
    "genesis": (["serene", "contemplative", "mystical"], 0.3, 0.1),
    "primordial": (["mystical", "contemplative", "ominous", "flowing"], 0.4, 0.2),
    "tribal": (["flowing", "energetic", "building", "intense"], 0.6, 0.4),
    "sacred": (["contemplative", "serene", "mystical", "releasing"], 0.5, 0.3),
    "modern": (["energetic", "building", "ecstatic", "flowing"], 0.7, 0.5),
}


def mood_descriptor() -> StateMachineDescriptor:
    """Mood state machine used by the orchestrator. Level is the mood's energy."""
    states = {}
    for name, values in _MOOD_TABLE.items():
        characteristics = dict(zip(_MOOD_KEYS, values))
        voices = MOOD_VOICES[name]
        states[name] = StateDefinition(
            level=characteristics["energy"],
            characteristics=characteristics,
            intensities={voice: 1.0 if plan["active"] else 0.0 for voice, plan in voices.items()},
            active={voice: plan["active"] for voice, plan in voices.items()},
            successors=_MOOD_SUCCESSORS[name],
            dwell_range=_MOOD_DWELL[name],
            attributes={"voices": voices},
        )
    modes = {
        era: ModeProfile(
            preferred_states=preferred,
            transition_speed=speed,
            volatility=volatility,
            default_state=ERA_MOODS[era],
        )
        for era, (preferred, speed, volatility) in _MOOD_MODES.items()
    }
    return StateMachineDescriptor(
        name="mood",
        states=states,
        default_state="serene",
        modes=modes,
        curve="ease_in_out",
        base_duration=4.0,
        duration_per_level=8.0,
        transition_speed=0.5,
        volatility=0.2,
        decision_interval=4.0,
    )


# ============================================================================
# Musical forms
# ============================================================================


def _form(name: str, sections: List[str], lengths: Dict[str, int], dynamics: Dict[str, float], style: str) -> MusicalForm:
    return MusicalForm(
        name=name,
        sections=[FormSection(name=s, length=lengths[s], dynamics=dynamics[s]) for s in sections],
        transition_style=style,
    )


MUSICAL_FORMS: Dict[str, MusicalForm] = {
    "ambient": _form(
        "ambient",
        ["intro", "body", "body", "body", "outro"],
        {"intro": 16, "body": 32, "outro": 16},
        {"intro": 0.3, "body": 0.5, "outro": 0.2},
        "smooth",
    ),
    "build_up": _form(
        "build_up",
        ["intro", "build", "build", "peak", "release"],
        {"intro": 8, "build": 16, "peak": 8, "release": 16},
        {"intro": 0.2, "build": 0.5, "peak": 1.0, "release": 0.3},
        "gradual",
    ),
    "cyclical": _form(
        "cyclical",
        ["verse", "chorus", "verse", "chorus", "bridge", "chorus"],
        {"verse": 16, "chorus": 16, "bridge": 8},
        {"verse": 0.5, "chorus": 0.8, "bridge": 0.6},
        "cut",
    ),
    "meditation": _form(
        "meditation",
        ["arrival", "settling", "depth", "depth", "emergence"],
        {"arrival": 24, "settling": 32, "depth": 48, "emergence": 24},
        {"arrival": 0.4, "settling": 0.3, "depth": 0.5, "emergence": 0.3},
        "smooth",
    ),
    "journey": _form(
        "journey",
        ["departure", "path", "obstacle", "breakthrough", "arrival"],
        {"departure": 16, "path": 32, "obstacle": 16, "breakthrough": 8, "arrival": 24},
        {"departure": 0.4, "path": 0.6, "obstacle": 0.8, "breakthrough": 1.0, "arrival": 0.5},
        "dramatic",
    ),
    "ritual": _form(
        "ritual",
        ["gathering", "invocation", "trance", "trance", "peak", "resolution"],
        {"gathering": 16, "invocation": 16, "trance": 32, "peak": 16, "resolution": 16},
        {"gathering": 0.3, "invocation": 0.5, "trance": 0.7, "peak": 1.0, "resolution": 0.4},
        "gradual",
    ),
}

ERA_FORMS: Dict[str, str] = {
    "genesis": "meditation",
    "primordial": "ambient",
    "tribal": "ritual",
    "sacred": "journey",
    "modern": "build_up",
}

ERA_TEMPOS: Dict[str, int] = {
    "genesis": 60,
    "primordial": 75,
    "tribal": 100,
    "sacred": 90,
    "modern": 120,
}

MIN_TEMPO = 40
MAX_TEMPO = 200


# ============================================================================
# Textures
# ============================================================================

# era -> texture -> {label, source kind, base intensity}; synthesis details live elsewhere
TEXTURE_LIBRARY: Dict[str, Dict[str, Dict[str, Any]]] = {
    "genesis": {
        "void_hum": {"label": "Void Hum", "source": "harmonic", "intensity": 0.3},
        "stellar_wind": {"label": "Stellar Wind", "source": "noise", "intensity": 0.2},
        "primordial_pulse": {"label": "Primordial Pulse", "source": "harmonic", "intensity": 0.25},
        "cosmic_dust": {"label": "Cosmic Dust", "source": "granular", "intensity": 0.15},
        "emergence_tone": {"label": "Emergence Tone", "source": "harmonic", "intensity": 0.35},
    },
    "primordial": {
        "cave_ambience": {"label": "Cave Ambience", "source": "noise", "intensity": 0.25},
        "water_flow": {"label": "Water Flow", "source": "noise", "intensity": 0.2},
        "wind_howl": {"label": "Wind Howl", "source": "noise", "intensity": 0.3},
        "earth_rumble": {"label": "Earth Rumble", "source": "harmonic", "intensity": 0.4},
        "creature_calls": {"label": "Creature Calls", "source": "granular", "intensity": 0.15},
        "fire_crackle": {"label": "Fire Crackle", "source": "impulse", "intensity": 0.2},
    },
    "tribal": {
        "jungle_atmosphere": {"label": "Jungle Atmosphere", "source": "layered", "intensity": 0.3},
        "tribal_chant_bg": {"label": "Tribal Chant Background", "source": "formant", "intensity": 0.2},
        "drum_resonance": {"label": "Drum Resonance", "source": "harmonic", "intensity": 0.25},
        "night_insects": {"label": "Night Insects", "source": "impulse", "intensity": 0.15},
        "storm_distant": {"label": "Distant Storm", "source": "layered", "intensity": 0.35},
        "fire_crackle": {"label": "Fire Crackle", "source": "impulse", "intensity": 0.2},
    },
    "sacred": {
        "cathedral_air": {"label": "Cathedral Air", "source": "noise", "intensity": 0.2},
        "organ_sustain": {"label": "Organ Sustain", "source": "harmonic", "intensity": 0.4},
        "choir_whisper": {"label": "Choir Whisper", "source": "formant", "intensity": 0.3},
        "bell_shimmer": {"label": "Bell Shimmer", "source": "bell", "intensity": 0.25},
        "sacred_drone": {"label": "Sacred Drone", "source": "harmonic", "intensity": 0.35},
        "incense_swirl": {"label": "Incense Swirl", "source": "granular", "intensity": 0.2},
    },
    "modern": {
        "analog_warmth": {"label": "Analog Warmth", "source": "harmonic", "intensity": 0.25},
        "tape_hiss": {"label": "Tape Hiss", "source": "noise", "intensity": 0.08},
        "sub_layer": {"label": "Sub Layer", "source": "harmonic", "intensity": 0.5},
        "pad_wash": {"label": "Pad Wash", "source": "supersaw", "intensity": 0.35},
        "glitch_texture": {"label": "Glitch Texture", "source": "glitch", "intensity": 0.15},
        "vinyl_crackle": {"label": "Vinyl Crackle", "source": "impulse", "intensity": 0.1},
        "white_noise_bed": {"label": "White Noise Bed", "source": "noise", "intensity": 0.12},
        "shimmer_reverb": {"label": "Shimmer Reverb", "source": "harmonic", "intensity": 0.2},
    },
}

TEXTURE_COMBINATIONS: Dict[str, Dict[str, List[str]]] = {
    "genesis": {
        "cosmic_ambience": ["void_hum", "stellar_wind", "cosmic_dust"],
        "emergence_bed": ["emergence_tone", "primordial_pulse"],
        "void_space": ["void_hum", "stellar_wind"],
    },
    "primordial": {
        "cave_dwelling": ["cave_ambience", "water_flow", "fire_crackle"],
        "wilderness": ["wind_howl", "creature_calls", "earth_rumble"],
        "primal_night": ["cave_ambience", "creature_calls", "fire_crackle"],
    },
    "tribal": {
        "ritual_ground": ["jungle_atmosphere", "tribal_chant_bg", "drum_resonance"],
        "night_ceremony": ["night_insects", "tribal_chant_bg", "fire_crackle"],
        "storm_ritual": ["storm_distant", "drum_resonance", "tribal_chant_bg"],
    },
    "sacred": {
        "cathedral_mass": ["cathedral_air", "organ_sustain", "choir_whisper"],
        "meditation_space": ["sacred_drone", "bell_shimmer", "incense_swirl"],
        "divine_presence": ["cathedral_air", "choir_whisper", "bell_shimmer"],
    },
    "modern": {
        "lo_fi_bed": ["analog_warmth", "tape_hiss", "vinyl_crackle"],
        "synth_atmosphere": ["pad_wash", "sub_layer", "shimmer_reverb"],
        "digital_decay": ["glitch_texture", "white_noise_bed", "tape_hiss"],
    },
}

ZONE_TEXTURE_MAP: Dict[str, Dict[str, str]] = {
    "genesis": {
        "top-left": "void_hum", "top-center": "stellar_wind", "top-right": "cosmic_dust",
        "middle-left": "primordial_pulse", "center": "emergence_tone", "middle-right": "cosmic_dust",
        "bottom-left": "void_hum", "bottom-center": "primordial_pulse", "bottom-right": "stellar_wind",
    },
    "primordial": {
        "top-left": "wind_howl", "top-center": "creature_calls", "top-right": "wind_howl",
        "middle-left": "cave_ambience", "center": "fire_crackle", "middle-right": "cave_ambience",
        "bottom-left": "earth_rumble", "bottom-center": "water_flow", "bottom-right": "earth_rumble",
    },
    "tribal": {
        "top-left": "night_insects", "top-center": "tribal_chant_bg", "top-right": "night_insects",
        "middle-left": "jungle_atmosphere", "center": "drum_resonance", "middle-right": "jungle_atmosphere",
        "bottom-left": "storm_distant", "bottom-center": "tribal_chant_bg", "bottom-right": "storm_distant",
    },
    "sacred": {
        "top-left": "choir_whisper", "top-center": "bell_shimmer", "top-right": "choir_whisper",
        "middle-left": "cathedral_air", "center": "organ_sustain", "middle-right": "cathedral_air",
        "bottom-left": "sacred_drone", "bottom-center": "incense_swirl", "bottom-right": "sacred_drone",
    },
    "modern": {
        "top-left": "shimmer_reverb", "top-center": "pad_wash", "top-right": "shimmer_reverb",
        "middle-left": "analog_warmth", "center": "sub_layer", "middle-right": "analog_warmth",
        "bottom-left": "glitch_texture", "bottom-center": "vinyl_crackle", "bottom-right": "tape_hiss",
    },
}
