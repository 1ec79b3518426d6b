import uvicorn

from rewrite_proxy.vars import HOST, PORT

if __name__ == "__main__":
    uvicorn.run("rewrite_proxy.server:app", host=HOST, port=PORT)
