from sketchturn import create_app, socketio

app = create_app()

if __name__ == '__main__':
    # Socket.IO server so the /ws relay works in dev
    socketio.run(app, debug=True)
