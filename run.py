"""
Application entry point
File khởi chạy ứng dụng Flask
"""
import io
import os
import sys

from dotenv import load_dotenv

# Thiết lập mã hóa UTF-8 cho đầu ra console
sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8')
sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8')

# Nạp .env trước khi app.config đọc biến môi trường
load_dotenv()

from app import create_app  # noqa: E402

app = create_app()

if __name__ == '__main__':
    host = os.getenv('FLASK_HOST', '0.0.0.0')
    port = int(os.getenv('FLASK_PORT', 5000))
    debug = os.getenv('FLASK_DEBUG', 'False').lower() in ('true', '1', 'yes')

    app.logger.info(f"Starting Flask application on {host}:{port}")
    app.logger.info(f"Debug mode: {debug}")

    app.run(
        host=host,
        port=port,
        debug=debug,
        threaded=True
    )
