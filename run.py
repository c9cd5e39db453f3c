#!/usr/bin/env python3
"""Development server runner"""
import os
from shipyard import create_app

if __name__ == '__main__':
    app = create_app('development')

    port = int(os.environ.get('PORT', 5000))
    app.run(host='0.0.0.0', port=port, debug=True)
