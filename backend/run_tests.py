# backend/run_tests.py
# Lanceur de la suite de tests (base Mongo en mémoire, aucune dépendance réseau).

import os
import sys

import pytest
from dotenv import load_dotenv

if __name__ == "__main__":
    # Variables locales éventuelles (clés Strava, admins) ; conftest fixe le reste
    load_dotenv(dotenv_path=os.path.join(os.path.dirname(__file__), ".env.test"))

    test_path = os.path.join(os.path.dirname(__file__), "tests")
    args = [test_path, "-v", *sys.argv[1:]]
    sys.exit(pytest.main(args))
