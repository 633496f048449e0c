"""
Seeds the GlobalSettings table with the default policy values and email
templates. Existing keys keep their values unless --reset is given.

    python seed_settings.py [--reset]
"""
import os
import sys

import django
from dotenv import load_dotenv

load_dotenv()

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "campus_outpass.settings")
django.setup()

from outpass.models import GlobalSettings
from outpass.global_settings import default_settings

reset = '--reset' in sys.argv[1:]

print("--- SEEDING GLOBAL SETTINGS ---")

for s in default_settings():
    if reset:
        obj, created = GlobalSettings.objects.update_or_create(key=s['key'], defaults=s)
    else:
        obj, created = GlobalSettings.objects.get_or_create(key=s['key'], defaults=s)
    status = "CREATED" if created else ("RESET" if reset else "KEPT")
    print(f"[{status}] {obj.label}: {obj.value}")

print("------------------------")
