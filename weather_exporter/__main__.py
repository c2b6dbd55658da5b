import sys

from weather_exporter.main import main

if __name__ == "__main__":
    sys.exit(main())
