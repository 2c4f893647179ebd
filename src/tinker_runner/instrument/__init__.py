from .javascript import JavaScriptProfile
from .php import PhpProfile
from .profiles import TargetProfile, get_profile, register_profile, registered_profiles, render_template
from .python import PythonProfile

for _profile in (JavaScriptProfile(), PhpProfile(), PythonProfile()):
    register_profile(_profile)

__all__ = [
    "JavaScriptProfile",
    "PhpProfile",
    "PythonProfile",
    "TargetProfile",
    "get_profile",
    "register_profile",
    "registered_profiles",
    "render_template",
]
