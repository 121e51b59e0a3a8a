import matplotlib
matplotlib.use("AGG")
