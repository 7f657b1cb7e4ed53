import sys

from ds_trend_pipeline.cli import main

sys.exit(main())
