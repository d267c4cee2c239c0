# run.py
# Description: Entry point for the ThinkTank console client. Makes sure the config file exists, then starts the app.
#
# Imports
from pathlib import Path
import sys
#
# Local Imports
# --- Add project root to sys.path ---
project_dir = Path(__file__).parent.resolve()
sys.path.insert(0, str(project_dir))
try:
    from thinktank_client.app import main
    from thinktank_client.config import get_config_path
except ModuleNotFoundError as e:
    print(f"ERROR: run.py: Failed to import from thinktank_client package.")
    print(f"       Ensure '{project_dir}' contains 'thinktank_client' and its dependencies are installed.")
    print(f"       Original error: {e}")
    sys.exit(1)
#
#######################################################################################################################
#
# Functions:

if __name__ == "__main__":
    config_path = get_config_path()
    if not config_path.exists():
        print(f"Config file not found at {config_path}, a default one will be created.")
    main()

#
# End of run.py
#######################################################################################################################
